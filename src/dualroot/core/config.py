"""
dualroot configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

CONFIG_ENV_VAR = "DUALROOT_CONFIG"
DEFAULT_CONFIG_PATH = Path("/etc/dualroot/config.json")


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".dualroot" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SafetyConfig(BaseModel):
    """Configuration for safety features."""

    container_check_enabled: bool = True
    require_root: bool = True
    reject_existing_layout: bool = True
    keep_staged_table: bool = False


class LayoutConfig(BaseModel):
    """Configuration for partition geometry planning."""

    # 1 keeps the plain doubling arithmetic, 2048 aligns sizes to 1 MiB
    alignment_sectors: int = Field(default=1, ge=1)
    partition_type: str | None = None  # Auto: 83 for dos, Linux GUID for gpt
    root_mount_point: str = "/"


class MigrationConfig(BaseModel):
    """Configuration for the data partition and migration."""

    data_directory: Path = Path("/data")
    backup_directory: Path  # Defaults to <data_directory>.bak
    scratch_mount_point: Path = Path("/mnt/dualroot-data")
    filesystem: Literal["ext4", "ext3", "ext2"] = "ext4"
    mount_options: str = "defaults"
    fstab_path: Path = Path("/etc/fstab")
    verify_exclude: list[str] = Field(default_factory=lambda: ["lost+found"])

    @field_validator(
        "data_directory", "backup_directory", "scratch_mount_point", "fstab_path", mode="before"
    )
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()

    @model_validator(mode="before")
    @classmethod
    def default_backup_directory(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        if data.get("backup_directory") is None:
            data_directory = Path(
                data.get("data_directory") or cls.model_fields["data_directory"].default
            ).expanduser()
            data = {
                **data,
                "backup_directory": data_directory.with_name(data_directory.name + ".bak"),
            }
        return data


class DualRootConfig(BaseModel):
    """Main dualroot configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    report_directory: Path = Field(default_factory=lambda: Path.home() / ".dualroot" / "reports")
    report_enabled: bool = True

    @field_validator("report_directory", mode="before")
    @classmethod
    def expand_report_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> DualRootConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = default_config_path()

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        if self.logging.file_enabled:
            self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        if self.report_enabled:
            self.report_directory.mkdir(parents=True, exist_ok=True)

    def get_report_file(self) -> Path:
        """Get path for a new run report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.report_directory / f"run_{timestamp}.json"


def default_config_path() -> Path:
    """Config file named by $DUALROOT_CONFIG, else the system-wide default."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(config_path: Path | None = None) -> DualRootConfig:
    """Load or create configuration."""
    config = DualRootConfig.load(config_path)
    config.ensure_directories()
    return config
