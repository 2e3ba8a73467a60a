"""Environment-based configuration using pydantic-settings.

Settings load from ``RECONCILER_*`` environment variables and an optional
``.env`` file. The cluster password is also accepted as ``REDIS_PASSWORD``,
the name the deployment scripts use.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from redisreconciler.connection import TLSOptions
from redisreconciler.exceptions import ConfigurationError
from redisreconciler.topology import DesiredTopology


class ReconcilerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RECONCILER_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Credentials
    password: SecretStr = Field(
        validation_alias=AliasChoices("RECONCILER_PASSWORD", "REDIS_PASSWORD"),
        description="Shared cluster password",
    )

    # Topology: either explicit pairs or a host list
    pairs: str | None = Field(default=None, description="master=replica,master=replica")
    hosts: str | None = Field(default=None, description="Comma-separated host list")
    master_port_start: int = Field(default=7001, gt=0, lt=65536)
    replica_port_start: int = Field(default=7004, gt=0, lt=65536)

    # Timeouts
    timeout: float = Field(default=5.0, gt=0, description="Per-command timeout in seconds")
    failover_attempts: int = Field(default=10, ge=1)
    failover_interval: float = Field(default=1.0, ge=0)
    join_attempts: int = Field(default=10, ge=1)
    verify_attempts: int = Field(default=5, ge=1)
    verify_interval: float = Field(default=1.0, ge=0)

    # TLS
    tls: bool = False
    tls_ca_cert: Path | None = None
    tls_cert: Path | None = None
    tls_key: Path | None = None

    # Logging
    log_level: str = Field(default="INFO", description="Application log level")
    log_format: Literal["console", "json"] = Field(default="console")

    @field_validator("password")
    @classmethod
    def _password_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("password must not be empty")
        return value

    def desired_topology(self) -> DesiredTopology:
        """Build the desired topology; pairs win over hosts."""
        if self.pairs:
            return DesiredTopology.from_string(self.pairs)
        if self.hosts:
            return DesiredTopology.from_hosts(
                self.hosts.split(","),
                master_port_start=self.master_port_start,
                replica_port_start=self.replica_port_start,
            )
        raise ConfigurationError(
            "No desired topology: set RECONCILER_PAIRS or RECONCILER_HOSTS"
        )

    def tls_options(self) -> TLSOptions | None:
        if not self.tls:
            return None
        return TLSOptions(
            ca_cert=str(self.tls_ca_cert) if self.tls_ca_cert else None,
            cert=str(self.tls_cert) if self.tls_cert else None,
            key=str(self.tls_key) if self.tls_key else None,
        )


def load_settings(env_file: str | Path | None = ".env", **overrides: object) -> ReconcilerSettings:
    """Load settings, turning validation failures into ConfigurationError."""
    try:
        return ReconcilerSettings(_env_file=env_file, **overrides)  # type: ignore[call-arg]
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
