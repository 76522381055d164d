"""Human-readable validator names from the validator metadata service.

Names are purely presentational, so every lookup failure degrades to
``None`` instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

import httpx

logger = logging.getLogger(__name__)


class ValidatorNameResolver:
    """Looks up ``GET {base_url}/{vote_account}`` and reads ``meta.name``.

    All lookups for one call to ``resolve_names`` run concurrently over a
    shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_connections: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_connections = max_connections
        self._transport = transport

    async def resolve_names_async(self, vote_accounts: Iterable[str]) -> dict[str, str | None]:
        accounts = list(dict.fromkeys(vote_accounts))
        if not accounts:
            return {}

        logger.info("Fetching validator names in parallel: %d lookup(s).", len(accounts))
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            limits=httpx.Limits(max_connections=self.max_connections),
            transport=self._transport,
        ) as client:
            names = await asyncio.gather(*(self._fetch_name(client, a) for a in accounts))

        resolved = dict(zip(accounts, names))
        logger.info(
            "Resolved %d of %d validator name(s).",
            sum(1 for n in names if n),
            len(accounts),
        )
        return resolved

    def resolve_names(self, vote_accounts: Iterable[str]) -> dict[str, str | None]:
        """Synchronous wrapper around ``resolve_names_async``."""
        return asyncio.run(self.resolve_names_async(vote_accounts))

    async def _fetch_name(self, client: httpx.AsyncClient, vote_account: str) -> str | None:
        try:
            response = await client.get(f"{self.base_url}/{vote_account}")
            if not response.is_success:
                return None
            data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.debug("Failed to fetch validator name for %s: %s", vote_account, exc)
            return None

        meta = data.get("meta") if isinstance(data, dict) else None
        name = meta.get("name") if isinstance(meta, dict) else None
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None
