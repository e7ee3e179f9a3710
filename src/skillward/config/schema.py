"""
Pydantic configuration schema for Skillward.

This module defines all configuration models with validation.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Uninstall Configuration
# =============================================================================


class UninstallConfig(BaseModel):
    """Limits and timing for skill removal."""

    model_config = ConfigDict(extra="allow")

    timeout_seconds: float = Field(default=300.0, gt=0)
    max_files: int = Field(default=10_000, ge=1)
    max_size_bytes: int = Field(default=1024 * 1024 * 1024, ge=1)
    locked_retry_delay: float = Field(default=0.1, ge=0.0, le=5.0)


# =============================================================================
# Update Configuration
# =============================================================================


class UpdateConfig(BaseModel):
    """Update, backup, and lock settings."""

    model_config = ConfigDict(extra="allow")

    keep_backup: bool = False
    lock_stale_seconds: int = Field(default=300, ge=1)
    timeout_seconds: float = Field(default=300.0, gt=0)


# =============================================================================
# Audit Configuration
# =============================================================================


class AuditLogConfig(BaseModel):
    """Audit logging configuration."""

    enable: bool = True
    base_dir: str | None = None


# =============================================================================
# General Configuration
# =============================================================================


class GeneralConfig(BaseModel):
    """General settings configuration."""

    model_config = ConfigDict(extra="allow")

    default_scope: Literal["project", "personal"] = "project"
    debug: bool = False


# =============================================================================
# Root Configuration
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for Skillward.

    Configuration can be loaded from YAML files and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    uninstall: UninstallConfig = Field(default_factory=UninstallConfig)
    update: UpdateConfig = Field(default_factory=UpdateConfig)
    audit: AuditLogConfig = Field(default_factory=AuditLogConfig)
    general: GeneralConfig = Field(default_factory=GeneralConfig)
