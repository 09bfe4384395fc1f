"""
Loads feature flag definitions from the bundled JSON catalog.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from shared.logging import get_logger
from .models import Environment, FeatureFlagDefinition


DEFAULT_DATA_FILE = Path(__file__).resolve().parent / "data" / "feature_flags.json"

logger = get_logger("flags.catalog")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_flag(entry: Dict[str, Any]) -> FeatureFlagDefinition:
    """Build a definition from one catalog entry. Raises on bad input."""
    rollout = entry.get("rollout_percentage")
    return FeatureFlagDefinition(
        key=entry["key"],
        name=entry.get("name", ""),
        description=entry.get("description", ""),
        enabled=bool(entry.get("enabled", False)),
        rollout_percentage=int(rollout) if rollout is not None else None,
        allowed_tenants=frozenset(entry.get("allowed_tenants") or ()),
        allowed_users=frozenset(entry.get("allowed_users") or ()),
        allowed_roles=frozenset(entry.get("allowed_roles") or ()),
        environment=Environment(entry.get("environment") or Environment.ALL.value),
        expires_at=_parse_datetime(entry.get("expires_at")),
        metadata=dict(entry.get("metadata") or {}),
    )


class FlagCatalog:
    """
    Feature flag definitions keyed by flag key.

    A missing or unreadable file yields an empty catalog, so every flag
    evaluates as "Flag not found" instead of the service failing to start.
    Entries that fail to parse are skipped. The file is read once, at
    construction; a changed catalog takes effect on service restart.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self._path = Path(config_path) if config_path else DEFAULT_DATA_FILE
        self._flags = self._load()

    @property
    def path(self) -> Path:
        """Return the resolved path to the data file."""
        return self._path

    @property
    def flags(self) -> Dict[str, FeatureFlagDefinition]:
        return dict(self._flags)

    def _load(self) -> Dict[str, FeatureFlagDefinition]:
        if not self._path.exists():
            logger.warning("Feature flag catalog not found", path=str(self._path))
            return {}

        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (ValueError, OSError) as exc:
            logger.error("Failed to read feature flag catalog", path=str(self._path), error=str(exc))
            return {}
        if not isinstance(payload, dict):
            logger.error("Feature flag catalog is not an object", path=str(self._path))
            return {}

        flags: Dict[str, FeatureFlagDefinition] = {}
        for entry in payload.get("flags", []):
            try:
                flag = parse_flag(entry)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping invalid feature flag", entry=entry, error=str(exc))
                continue
            flags[flag.key] = flag

        logger.info("Feature flag catalog loaded", path=str(self._path), flags=len(flags))
        return flags
