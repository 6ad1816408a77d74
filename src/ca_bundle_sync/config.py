"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so TRUST_BUNDLE__TARGET_NAMESPACE
maps to trust_bundle.target_namespace, KUBERNETES__API_URL to kubernetes.api_url,
and so on.

TrustBundleSettings is the engine's configuration struct: the source
accessor and reconciler receive it in their constructors instead of reading
module constants, so tests can point them at fixture objects.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"

_SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class KubernetesSettings(BaseModel):
    """
    API server connection.

    Defaults target in-cluster operation with the pod's service account.
    An explicit `token` takes priority over `token_path`.
    """

    api_url: str = Field(default="https://kubernetes.default.svc", description="API server base URL")
    token: SecretStr | None = Field(default=None, description="Bearer token (overrides token_path)")
    token_path: Path = Field(default=_SERVICE_ACCOUNT_DIR / "token")
    ca_path: Path | None = Field(default=_SERVICE_ACCOUNT_DIR / "ca.crt")
    verify_tls: bool = Field(default=True)

    def tls_verify(self) -> bool | str:
        """Return the httpx `verify` argument: CA file if present, else the flag."""
        if not self.verify_tls:
            return False
        if self.ca_path is not None and self.ca_path.exists():
            return str(self.ca_path)
        return True


class TrustBundleSettings(BaseModel):
    """Where the three sources live and where the merged bundle is written."""

    system_bundle_path: Path = Field(
        default=Path("/etc/pki/ca-trust/extracted/pem/tls-ca-bundle.pem"),
        description="Local PEM file with the system trust anchors",
    )
    target_namespace: str = Field(default="openshift-cloud-controller-manager")
    output_config_map_name: str = Field(default="ccm-trusted-ca")
    output_key: str = Field(default="ca-bundle.crt")
    user_namespace: str = Field(default="openshift-config")
    proxy_name: str = Field(default="cluster")
    user_key: str = Field(default="ca-bundle.crt")
    provider_config_map_name: str = Field(default="cloud-conf")
    provider_key: str = Field(default="ca-bundle.pem")

    @model_validator(mode="after")
    def check_distinct_objects(self) -> TrustBundleSettings:
        """The engine must never overwrite the provider map it reads from."""
        if self.provider_config_map_name == self.output_config_map_name:
            raise ValueError(
                "provider_config_map_name and output_config_map_name must differ "
                f"(both are {self.output_config_map_name!r})"
            )
        return self


class SchedulerSettings(BaseModel):
    """
    Periodic resync trigger as a standard 5-field cron expression.

    Catches drift that produced no watch notification (e.g. a missed delete)
    and picks up changes to the system bundle file.
    """

    cron: str = Field(
        default="*/5 * * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class RetrySettings(BaseModel):
    """Write-conflict retries inside a cycle, and backoff between failed cycles."""

    conflict_attempts: int = Field(default=5, ge=1)
    conflict_backoff_seconds: float = Field(default=0.2, ge=0)
    backoff_base_seconds: float = Field(default=1.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    kubernetes: KubernetesSettings = Field(default_factory=lambda: KubernetesSettings())
    trust_bundle: TrustBundleSettings = Field(default_factory=lambda: TrustBundleSettings())
    scheduler: SchedulerSettings = Field(default_factory=lambda: SchedulerSettings())
    retry: RetrySettings = Field(default_factory=lambda: RetrySettings())

    http_timeout_seconds: int = Field(default=30, ge=1)
    watch_timeout_seconds: int = Field(default=300, ge=1)
    watch_enabled: bool = Field(default=True)
    run_on_startup: bool = Field(default=True)
    record_events: bool = Field(default=True)
    log_level: str = Field(default="INFO")
