"""Environment-driven settings.

Environment variables (all overridable via constructor args):
    SNAP_REALM                    – realm prefix for generated ids (default snap)
    SNAP_MAX_PART_BYTES           – advisory per-part size ceiling (default unset)
    SNAP_STRICT_PART_SIZE         – reject oversized parts instead of warning
    SNAP_MESSAGE_MAX_AGE_MINUTES  – staleness window for messages (default 5)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    realm: str = "snap"
    max_part_bytes: Optional[int] = None
    strict_part_size: bool = False
    message_max_age_minutes: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``SNAP_*`` environment variables."""
        max_age = os.environ.get("SNAP_MESSAGE_MAX_AGE_MINUTES")
        return cls(
            realm=os.environ.get("SNAP_REALM", "snap"),
            max_part_bytes=_env_int("SNAP_MAX_PART_BYTES"),
            strict_part_size=_env_bool("SNAP_STRICT_PART_SIZE"),
            message_max_age_minutes=float(max_age) if max_age else 5.0,
        )
