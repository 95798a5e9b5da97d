"""Core configuration - centralized config for the oracle.

All environment-based configuration flows through this module and is read
once at startup; there is no hot reload.

Usage:
    from govoracle.core.config import get_config
    config = get_config()

    for network in config.networks:
        ...
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigException

DEFAULT_BEACON_URLS = [
    "https://api.drand.sh",
    "https://api2.drand.sh",
    "https://api3.drand.sh",
    "https://drand.cloudflare.com",
]

# drand "quicknet" (3s period, unchained, signatures on G1)
DEFAULT_BEACON_CHAIN_HASH = "52db9ba70e0cc0f6eaf7803dd07447a1f5477735fd3f661792ba94600c84e971"


class NetworkConfig(BaseModel):
    """One EVM network the oracle follows. Immutable after load."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Chain id, used as the network identifier")
    name: str
    rpc_url: str
    governance_contract: str
    oracle_contract: str
    governance_abi: Path | None = Field(default=None, description="ABI JSON file; None = bundled ABI")
    oracle_abi: Path | None = Field(default=None, description="ABI JSON file; None = bundled ABI")
    deployment_height: int = Field(default=0, ge=0)


class OracleSettings(BaseSettings):
    """Configuration settings for the oracle.

    Settings can be configured via environment variables with the
    GOVORACLE_ prefix (or a .env file in the working directory).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # DATABASE SETTINGS
    # ==========================================================================

    db_host: str = Field(default="localhost", description="Database host", validation_alias="GOVORACLE_DB_HOST")
    db_port: int = Field(default=5432, description="Database port", validation_alias="GOVORACLE_DB_PORT")
    db_name: str = Field(default="govoracle", description="Database name", validation_alias="GOVORACLE_DB_NAME")
    db_user: str = Field(default="govoracle", description="Database user", validation_alias="GOVORACLE_DB_USER")
    db_password: str = Field(default="", description="Database password", validation_alias="GOVORACLE_DB_PASSWORD")

    db_pool_min: int = Field(default=2, description="Minimum pool connections", validation_alias="GOVORACLE_DB_POOL_MIN")
    db_pool_max: int = Field(default=10, description="Maximum pool connections", validation_alias="GOVORACLE_DB_POOL_MAX")
    db_statement_timeout_seconds: int = Field(
        default=180,
        description="Per-statement timeout applied to every pooled connection",
        validation_alias="GOVORACLE_DB_STATEMENT_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)", validation_alias="GOVORACLE_LOG_LEVEL")
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="GOVORACLE_LOG_FORMAT",
    )
    log_file: str | None = Field(default=None, description="Log file path (optional)", validation_alias="GOVORACLE_LOG_FILE")

    # ==========================================================================
    # NETWORK SETTINGS
    # ==========================================================================

    networks: list[NetworkConfig] = Field(
        default=[],
        description="Ordered network descriptors as a JSON list",
        validation_alias="GOVORACLE_NETWORKS",
    )
    networks_file: Path | None = Field(
        default=None,
        description="JSON file with the network descriptors (used when GOVORACLE_NETWORKS is unset)",
        validation_alias="GOVORACLE_NETWORKS_FILE",
    )
    rpc_timeout_seconds: float = Field(default=15.0, description="Timeout for each RPC call", validation_alias="GOVORACLE_RPC_TIMEOUT")
    sync_block_limit: int = Field(
        default=2880,
        gt=0,
        description="Maximum number of blocks ingested per sync run",
        validation_alias="GOVORACLE_SYNC_BLOCK_LIMIT",
    )
    sync_rpc_concurrency: int = Field(
        default=8,
        gt=0,
        description="Parallel block lookups per sync run",
        validation_alias="GOVORACLE_SYNC_RPC_CONCURRENCY",
    )

    # ==========================================================================
    # POWER SERVICE SETTINGS
    # ==========================================================================

    power_service_url: str = Field(
        default="http://127.0.0.1:8700",
        description="Base URL of the power-computation service",
        validation_alias="GOVORACLE_POWER_SERVICE_URL",
    )
    power_timeout_seconds: float = Field(default=15.0, description="Power service request timeout", validation_alias="GOVORACLE_POWER_TIMEOUT")

    # ==========================================================================
    # BEACON SETTINGS
    # ==========================================================================

    beacon_urls: list[str] = Field(
        default=DEFAULT_BEACON_URLS,
        description="Randomness-beacon endpoints, tried in order",
        validation_alias="GOVORACLE_BEACON_URLS",
    )
    beacon_chain_hash: str = Field(
        default=DEFAULT_BEACON_CHAIN_HASH,
        description="Beacon chain hash the ballots are sealed against",
        validation_alias="GOVORACLE_BEACON_CHAIN_HASH",
    )
    beacon_timeout_seconds: float = Field(default=15.0, description="Beacon request timeout", validation_alias="GOVORACLE_BEACON_TIMEOUT")
    seal_max_attempts: int = Field(default=5, gt=0, description="Encryption attempts before giving up", validation_alias="GOVORACLE_SEAL_MAX_ATTEMPTS")

    # ==========================================================================
    # SCHEDULER SETTINGS
    # ==========================================================================

    sync_interval_seconds: float = Field(default=10.0, gt=0, validation_alias="GOVORACLE_SYNC_INTERVAL")
    tally_interval_seconds: float = Field(default=300.0, gt=0, validation_alias="GOVORACLE_TALLY_INTERVAL")
    power_backup_interval_seconds: float = Field(default=3600.0, gt=0, validation_alias="GOVORACLE_POWER_BACKUP_INTERVAL")
    power_backup_enabled: bool = Field(default=True, validation_alias="GOVORACLE_POWER_BACKUP_ENABLED")

    # ==========================================================================
    # TALLY SETTINGS
    # ==========================================================================

    tally_rule: str = Field(
        default="proposal",
        description="Weighting rule: proposal, sum, developer, sp, client or token_holder",
        validation_alias="GOVORACLE_TALLY_RULE",
    )
    tally_options: list[str] = Field(
        default=["approve", "reject"],
        description="Option ids that always get a result row, even with zero weight",
        validation_alias="GOVORACLE_TALLY_OPTIONS",
    )
    tally_concurrency: int = Field(default=8, gt=0, validation_alias="GOVORACLE_TALLY_CONCURRENCY")

    @model_validator(mode="after")
    def load_networks_file(self) -> OracleSettings:
        """Fill `networks` from `networks_file` when no inline list was given."""
        if self.networks or self.networks_file is None:
            return self
        try:
            raw = json.loads(Path(self.networks_file).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigException(f"Cannot read networks file {self.networks_file}: {e}") from e
        try:
            networks = [NetworkConfig.model_validate(item) for item in raw]
        except (TypeError, ValidationError) as e:
            raise ConfigException(f"Invalid network descriptor in {self.networks_file}: {e}") from e
        object.__setattr__(self, "networks", networks)
        return self

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def network_ids(self) -> list[int]:
        return [network.id for network in self.networks]

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "options": f"-c statement_timeout={self.db_statement_timeout_seconds * 1000}",
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: OracleSettings | None = None


def get_config() -> OracleSettings:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = OracleSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
