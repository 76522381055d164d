"""Snapshot providers: where the planner's pool state comes from.

Every provider returns a fully validated ``PoolSnapshot`` or raises
``SnapshotUnavailable``; a partially parsed snapshot never escapes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

import httpx
from pydantic import ValidationError

from models.snapshot import PoolSnapshot

logger = logging.getLogger(__name__)


class SnapshotUnavailable(Exception):
    """The pool snapshot could not be fetched or parsed."""


class SnapshotProvider(Protocol):
    def fetch(self) -> PoolSnapshot:
        ...


class FileSnapshotProvider:
    """Reads a snapshot previously dumped to disk (``data.json``)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def fetch(self) -> PoolSnapshot:
        try:
            snapshot = PoolSnapshot.from_json(self._path)
        except FileNotFoundError as exc:
            raise SnapshotUnavailable(str(exc)) from exc
        except (json.JSONDecodeError, ValidationError) as exc:
            raise SnapshotUnavailable(f"Invalid snapshot in '{self._path}': {exc}") from exc
        logger.info(
            "Loaded snapshot from '%s': %d validator(s).",
            self._path,
            len(snapshot.validators),
        )
        return snapshot


class HttpSnapshotProvider:
    """Fetches a snapshot document from an HTTP endpoint.

    The endpoint must serve the same JSON shape as the on-disk snapshot.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    def fetch(self) -> PoolSnapshot:
        logger.info("Fetching pool snapshot from %s", self._url)
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(self._url)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as exc:
            raise SnapshotUnavailable(f"Snapshot request to {self._url} timed out.") from exc
        except httpx.HTTPStatusError as exc:
            raise SnapshotUnavailable(
                f"Snapshot endpoint returned HTTP {exc.response.status_code}."
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SnapshotUnavailable(f"Cannot reach snapshot endpoint {self._url}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SnapshotUnavailable(f"Snapshot endpoint returned invalid JSON: {exc}") from exc

        try:
            snapshot = PoolSnapshot.model_validate(payload)
        except ValidationError as exc:
            raise SnapshotUnavailable(f"Snapshot from {self._url} failed validation: {exc}") from exc

        logger.info(
            "Fetched snapshot: %d validator(s), reserve %.9f SOL.",
            len(snapshot.validators),
            snapshot.reserve_balance,
        )
        return snapshot
