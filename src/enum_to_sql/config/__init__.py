"""Configuration management: targets, TOML loading, and config models.

Usage:
    >>> from enum_to_sql.config import load_config, resolve_url, TargetProfile
"""

from enum_to_sql.config.loader import get_target, load_config, resolve_url
from enum_to_sql.config.models import EnumToSqlConfig, ReplicationSettings, TargetProfile

__all__ = [
    "load_config",
    "resolve_url",
    "get_target",
    "EnumToSqlConfig",
    "ReplicationSettings",
    "TargetProfile",
]
