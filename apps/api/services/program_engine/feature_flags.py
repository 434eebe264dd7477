"""
Feature Flag Service

Resolves a flag for one owner with a fixed precedence:

1. per-owner override
2. percentage rollout (consistent hash of owner and flag key)
3. global default (flag missing)

Used to choose the pipeline strategy once per job.

Flag definitions and per-owner overrides are cached for
FEATURE_FLAG_CACHE_TTL seconds: in Redis when a client is available,
otherwise in a dict shared by every service in the process.

Usage:
    flags = FeatureFlagService(db, cache)
    if flags.is_enabled("program_generation.structured_output", owner_id):
        ...
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from core.cache import cache_key, delete_cache, get_cache, get_redis_client, set_cache
from core.config import settings

from .constants import PipelineStrategy

logger = logging.getLogger(__name__)

# Fallback for no Redis: key -> (expires_at, value)
_local_cache: Dict[str, Tuple[float, Any]] = {}


def clear_local_cache() -> None:
    _local_cache.clear()


@dataclass
class FlagResolution:
    """Outcome of resolving a flag for one owner."""
    enabled: Optional[bool]  # None: flag does not exist
    source: str  # override | rollout | disabled | missing


class FeatureFlagService:
    """
    Central service for feature flag resolution.

    Flags are read from the database and cached in Redis when a client is
    given, otherwise in the process-wide dict above.
    """

    def __init__(self, db: Session, cache=None):
        """
        Args:
            db: SQLAlchemy session
            cache: Redis client (optional, uses in-memory if not provided)
        """
        self.db = db
        self.cache = cache

    def resolve(self, flag_key: str, owner_id: Any = None) -> FlagResolution:
        if owner_id is not None:
            override = self._get_override(flag_key, owner_id)
            if override is not None:
                return FlagResolution(enabled=override, source="override")

        flag = self._get_flag(flag_key)
        if not flag:
            return FlagResolution(enabled=None, source="missing")
        if not flag.get("enabled", False):
            return FlagResolution(enabled=False, source="disabled")

        rollout = flag.get("rollout_percentage", 100)
        if owner_id is None:
            return FlagResolution(enabled=rollout >= 100, source="rollout")
        return FlagResolution(enabled=self._in_rollout(owner_id, rollout, flag_key), source="rollout")

    def is_enabled(self, flag_key: str, owner_id: Any = None, default: bool = False) -> bool:
        resolution = self.resolve(flag_key, owner_id)
        return default if resolution.enabled is None else resolution.enabled

    def create_flag(
        self,
        key: str,
        name: str,
        enabled: bool = False,
        rollout_percentage: int = 100,
        description: str = None,
    ) -> dict:
        """Create a new feature flag."""
        from models import FeatureFlag

        flag = FeatureFlag(
            key=key,
            name=name,
            description=description,
            enabled=enabled,
            rollout_percentage=rollout_percentage,
        )
        self.db.add(flag)
        self.db.commit()
        self._invalidate_cache(key)
        return self._flag_to_dict(flag)

    def set_flag(self, flag_key: str, updates: dict) -> bool:
        """Update a feature flag. Returns False if it does not exist."""
        from models import FeatureFlag

        flag = self.db.query(FeatureFlag).filter_by(key=flag_key).first()
        if not flag:
            return False

        for field, value in updates.items():
            if hasattr(flag, field):
                setattr(flag, field, value)
        self.db.commit()
        self._invalidate_cache(flag_key)
        return True

    def set_override(self, flag_key: str, owner_id: Any, enabled: bool, reason: str = None) -> None:
        """Force a flag value for one owner."""
        from models import FeatureFlagOverride

        owner = owner_id if isinstance(owner_id, UUID) else UUID(str(owner_id))
        override = (
            self.db.query(FeatureFlagOverride)
            .filter_by(flag_key=flag_key, owner_id=owner)
            .first()
        )
        if override is None:
            override = FeatureFlagOverride(flag_key=flag_key, owner_id=owner)
            self.db.add(override)
        override.enabled = enabled
        override.reason = reason
        self.db.commit()
        self._cache_delete(cache_key("flag_override", flag_key, owner))

    def _get_override(self, flag_key: str, owner_id: Any) -> Optional[bool]:
        from models import FeatureFlagOverride

        owner = owner_id if isinstance(owner_id, UUID) else UUID(str(owner_id))
        key = cache_key("flag_override", flag_key, owner)
        cached = self._cache_get(key)
        if cached is not None:
            return cached["enabled"]

        override = (
            self.db.query(FeatureFlagOverride)
            .filter_by(flag_key=flag_key, owner_id=owner)
            .first()
        )
        enabled = None if override is None else bool(override.enabled)
        # Absence is cached too, so owners without an override skip the query
        self._cache_set(key, {"enabled": enabled})
        return enabled

    def _get_flag(self, flag_key: str) -> Optional[dict]:
        """Get flag from cache or database."""
        key = cache_key("flag", flag_key)
        cached = self._cache_get(key)
        if cached:
            return cached

        from models import FeatureFlag

        flag = self.db.query(FeatureFlag).filter_by(key=flag_key).first()
        if not flag:
            return None

        flag_dict = self._flag_to_dict(flag)
        self._cache_set(key, flag_dict)
        return flag_dict

    def _cache_get(self, key: str) -> Optional[Any]:
        if self.cache is not None:
            return get_cache(self.cache, key)
        entry = _local_cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            _local_cache.pop(key, None)
            return None
        return value

    def _cache_set(self, key: str, value: Any) -> None:
        ttl = settings.FEATURE_FLAG_CACHE_TTL
        if self.cache is not None:
            set_cache(self.cache, key, value, ttl)
        else:
            _local_cache[key] = (time.monotonic() + ttl, value)

    def _cache_delete(self, key: str) -> None:
        if self.cache is not None:
            delete_cache(self.cache, key)
        else:
            _local_cache.pop(key, None)

    def _flag_to_dict(self, flag) -> dict:
        return {
            "key": flag.key,
            "name": flag.name,
            "description": flag.description,
            "enabled": flag.enabled,
            "rollout_percentage": flag.rollout_percentage,
        }

    def _invalidate_cache(self, flag_key: str):
        self._cache_delete(cache_key("flag", flag_key))

    def _in_rollout(self, owner_id: Any, percentage: int, flag_key: str) -> bool:
        """
        Determine if owner is in rollout percentage.
        Uses consistent hashing so same owner always gets same result.
        """
        if percentage >= 100:
            return True
        if percentage <= 0:
            return False

        hash_input = f"{owner_id}:{flag_key}"
        hash_value = int(hashlib.md5(hash_input.encode()).hexdigest(), 16)
        return hash_value % 100 < percentage


def resolve_pipeline_strategy(owner_id: Any, db: Session, cache=None) -> PipelineStrategy:
    """
    Pick the pipeline strategy for a new job.

    The flag key names the structured-output pipeline: enabled means
    `structured`, disabled means the legacy `json_mode`. A missing flag
    falls back to PIPELINE_STRATEGY_DEFAULT. Uses the shared Redis client
    unless a cache is passed.
    """
    if cache is None:
        cache = get_redis_client()
    service = FeatureFlagService(db, cache)
    resolution = service.resolve(settings.PIPELINE_STRATEGY_FLAG_KEY, owner_id)
    if resolution.enabled is None:
        strategy = PipelineStrategy(settings.PIPELINE_STRATEGY_DEFAULT)
    elif resolution.enabled:
        strategy = PipelineStrategy.STRUCTURED
    else:
        strategy = PipelineStrategy.JSON_MODE

    logger.info(f"Pipeline strategy for owner {owner_id}: {strategy.value} (source={resolution.source})")
    return strategy
