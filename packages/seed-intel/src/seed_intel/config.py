"""
Configuration management for seed-intel.

Loads and validates configuration from seed-intel.toml files using Pydantic.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import Field
from pydantic_settings import BaseSettings

from seed_intel.scoring import rolling_hash

CONFIG_FILENAME = "seed-intel.toml"

StrategyName = Literal["comprehensive", "fast", "conservative", "aggressive"]
ArchitectureName = Literal["individual", "team", "hybrid"]
DomainName = Literal["outdoor", "saas", "ecommerce", "social", "generic"]


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    url: str = Field(
        default="postgresql://localhost/postgres",
        description="PostgreSQL connection URL",
    )
    schema_name: str = Field(default="public", description="Schema to analyze")


class DetectionConfig(BaseSettings):
    """Architecture/domain detection configuration."""

    architecture_strategy: StrategyName = Field(
        default="comprehensive", description="Scoring strategy for architecture detection"
    )
    domain_strategy: StrategyName = Field(
        default="comprehensive", description="Scoring strategy for domain detection"
    )
    detect_secondary: bool = Field(
        default=True, description="Report secondary labels above the moderate threshold"
    )
    manual_architecture: Optional[ArchitectureName] = Field(
        default=None, description="Bypass architecture scoring with a fixed label"
    )
    manual_domain: Optional[DomainName] = Field(
        default=None, description="Bypass domain scoring with a fixed label"
    )
    enable_caching: bool = Field(default=True, description="Cache unified detection results")
    cache_ttl_seconds: float = Field(
        default=300.0, gt=0, description="Lifetime of cached detection results"
    )
    max_execution_time: float = Field(
        default=30.0,
        ge=0,
        description="Detection time budget in seconds (0 disables the deadline)",
    )

    def fingerprint(self) -> str:
        """Rolling hash of the settings that influence detection output."""
        payload = self.model_dump_json(exclude={"enable_caching", "cache_ttl_seconds"})
        return rolling_hash(payload)


class DiscoveryConfig(BaseSettings):
    """Constraint discovery configuration."""

    enable_caching: bool = Field(default=True, description="Cache discovery results")
    cache_ttl_seconds: float = Field(
        default=600.0, gt=0, description="Lifetime of cached discovery results"
    )
    max_workers: int = Field(
        default=4, ge=1, description="Parallel function fetches (capped by the pool size)"
    )
    max_execution_time: float = Field(
        default=60.0,
        ge=0,
        description="Discovery time budget in seconds (0 disables the deadline)",
    )
    validate_rules: bool = Field(
        default=True,
        description="Check extracted rules against the schema snapshot when one is given",
    )


class Config(BaseSettings):
    """Main configuration for seed-intel."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)

    @classmethod
    def from_toml(cls, path: Path | str) -> Config:
        """
        Load configuration from TOML file.

        Args:
            path: Path to seed-intel.toml file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(**data)

    @classmethod
    def find_and_load(cls, start_dir: Optional[Path] = None) -> Config:
        """
        Find and load configuration from seed-intel.toml.

        Searches for seed-intel.toml starting from start_dir and walking up
        parent directories until found or reaching filesystem root.

        Args:
            start_dir: Directory to start search (defaults to current directory)

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If no config file found
        """
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()

        while True:
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return cls.from_toml(config_path)

            parent = current.parent
            if parent == current:
                break
            current = parent

        raise FileNotFoundError(
            f"No {CONFIG_FILENAME} found in {start_dir} or parent directories. "
            f"Run 'seed-intel init' to create one."
        )

    def to_toml(self, path: Path | str) -> None:
        """
        Write configuration to TOML file.

        Args:
            path: Path to write seed-intel.toml
        """
        config_path = Path(path)
        detection = self.detection
        discovery = self.discovery

        lines = [
            "# seed-intel configuration",
            "",
            "[database]",
            f'url = "{self.database.url}"',
            f'schema_name = "{self.database.schema_name}"',
            "",
            "[detection]",
            f'architecture_strategy = "{detection.architecture_strategy}"',
            f'domain_strategy = "{detection.domain_strategy}"',
            f"detect_secondary = {str(detection.detect_secondary).lower()}",
        ]
        # TOML has no null, so unset overrides are left out
        if detection.manual_architecture is not None:
            lines.append(f'manual_architecture = "{detection.manual_architecture}"')
        if detection.manual_domain is not None:
            lines.append(f'manual_domain = "{detection.manual_domain}"')
        lines += [
            f"enable_caching = {str(detection.enable_caching).lower()}",
            f"cache_ttl_seconds = {detection.cache_ttl_seconds}",
            f"max_execution_time = {detection.max_execution_time}",
        ]
        lines += [
            "",
            "[discovery]",
            f"enable_caching = {str(discovery.enable_caching).lower()}",
            f"cache_ttl_seconds = {discovery.cache_ttl_seconds}",
            f"max_workers = {discovery.max_workers}",
            f"max_execution_time = {discovery.max_execution_time}",
            f"validate_rules = {str(discovery.validate_rules).lower()}",
        ]

        config_path.write_text("\n".join(lines) + "\n")


# Default configuration instance
DEFAULT_CONFIG = Config()
