"""Pydantic models for the enum-to-sql configuration file."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class TargetProfile(BaseModel):
    """Target database from enum-to-sql.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class ReplicationSettings(BaseModel):
    """The ``[replication]`` table of enum-to-sql.toml."""

    modules: list[str] = Field(default_factory=list)
    parallel: bool = True
    format: str = "plain"


class EnumToSqlConfig(BaseModel):
    """Complete configuration from enum-to-sql.toml."""

    targets: dict[str, TargetProfile] = Field(default_factory=dict)
    replication: ReplicationSettings = Field(default_factory=ReplicationSettings)
