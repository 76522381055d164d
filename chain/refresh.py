"""Session-start snapshot refresh with fallback to the cached snapshot.

Lifecycle:
    1. Fetch a fresh snapshot from the configured provider.
    2. Fill in missing validator names from the metadata service.
    3. Write the result to the cache file.

If step 1 fails, the cached snapshot is used instead; names resolved for it
are written back so the next start does not look them up again.  If there is
no usable cache either, ``SnapshotUnavailable`` propagates and the session
does not start.
"""

from __future__ import annotations

import logging
from pathlib import Path

from chain.names import ValidatorNameResolver
from chain.provider import (
    FileSnapshotProvider,
    HttpSnapshotProvider,
    SnapshotProvider,
    SnapshotUnavailable,
)
from chain.rpc import RpcSnapshotProvider
from models.config import PlannerConfig
from models.snapshot import PoolSnapshot

logger = logging.getLogger(__name__)


def provider_for(config: PlannerConfig) -> SnapshotProvider:
    """Pick the snapshot source: the HTTP endpoint if configured, else the RPC node."""
    if config.snapshot_url:
        return HttpSnapshotProvider(config.snapshot_url, config.http_timeout_seconds)
    return RpcSnapshotProvider(
        config.rpc_url,
        config.pool_address,
        timeout=config.http_timeout_seconds,
    )


def refresh_snapshot(
    provider: SnapshotProvider | None,
    cache_path: str | Path,
    resolver: ValidatorNameResolver | None = None,
) -> PoolSnapshot:
    """Return the freshest available snapshot, updating the cache on success."""
    cache_path = Path(cache_path)

    if provider is None:
        logger.info("No snapshot source configured; using cached '%s'.", cache_path)
        return _from_cache(cache_path, resolver)

    try:
        snapshot = provider.fetch()
    except SnapshotUnavailable as exc:
        logger.warning("Failed to fetch pool snapshot: %s. Using existing '%s'.", exc, cache_path)
        return _from_cache(cache_path, resolver)

    snapshot = _with_names(snapshot, resolver)
    snapshot.to_json(cache_path)
    logger.info("Updated cached snapshot at '%s'.", cache_path)
    return snapshot


def _from_cache(cache_path: Path, resolver: ValidatorNameResolver | None) -> PoolSnapshot:
    cached = FileSnapshotProvider(cache_path).fetch()
    snapshot = _with_names(cached, resolver)
    if snapshot != cached:
        try:
            snapshot.to_json(cache_path)
        except OSError as exc:
            logger.warning("Could not update names in '%s': %s", cache_path, exc)
        else:
            logger.info("Saved resolved names to '%s'.", cache_path)
    return snapshot


def _with_names(snapshot: PoolSnapshot, resolver: ValidatorNameResolver | None) -> PoolSnapshot:
    """Return a copy of *snapshot* with unnamed validators filled in where possible."""
    if resolver is None:
        return snapshot
    missing = [v.vote_account for v in snapshot.validators if not v.name]
    if not missing:
        return snapshot

    names = resolver.resolve_names(missing)
    validators = [
        v.model_copy(update={"name": names.get(v.vote_account)}) if not v.name else v
        for v in snapshot.validators
    ]
    return snapshot.model_copy(update={"validators": validators})
