"""
Credential refresh configuration.

Two entry points:
    - RefreshConfig.from_mapping(conf): string-valued cluster configuration
      keyed by the public names (auth-user, auth-principal, ...)
    - RefreshConfig.load_config(path): config.yaml `credential_refresh:`
      section with environment variable overrides

Missing required values never raise here: an incomplete configuration simply
means the refresh feature stays inactive (see RefreshConfig.is_complete).
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

# Public configuration keys
AUTH_USER_KEY = "auth-user"
AUTH_PRINCIPAL_KEY = "auth-principal"
AUTH_KEYTAB_KEY = "auth-keytab"
ISSUER_ENDPOINT_URL_KEY = "issuer-endpoint-url"
ISSUER_PRINCIPAL_KEY = "issuer-principal"

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"
DEFAULT_REFRESH_INTERVAL_SECONDS = 60.0
DEFAULT_KEYTAB_DIR = Path(tempfile.gettempdir()) / "delegation_refresh"
DEFAULT_BROADCAST_MAX_WORKERS = 8
DEFAULT_AUDIT_LOG_PATH = "logs/audit/credential_refresh_audit.log"


def _clean(value: Optional[Any]) -> Optional[str]:
    """Normalize a raw config value: blank strings count as absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class IssuerOptions:
    """Options handed to the credential issuer.

    Constructing directly with blank fields raises ValueError. Use
    IssuerOptions.make() to get None for an incomplete configuration.
    """

    endpoint_url: str
    principal: str

    def __post_init__(self):
        if not _clean(self.endpoint_url):
            raise ValueError("Issuer endpoint URL is required")
        if not _clean(self.principal):
            raise ValueError("Issuer principal is required")

    @classmethod
    def make(cls, conf: Mapping[str, Any]) -> Optional["IssuerOptions"]:
        """Build options from cluster configuration, None if incomplete."""
        endpoint_url = _clean(conf.get(ISSUER_ENDPOINT_URL_KEY))
        principal = _clean(conf.get(ISSUER_PRINCIPAL_KEY))
        if endpoint_url is None or principal is None:
            return None
        return cls(endpoint_url=endpoint_url, principal=principal)


@dataclass(frozen=True)
class IdentityDescriptor:
    """Who the refresher logs in as, and optionally who it impersonates.

    keytab_path references materialized key material; the raw secret is
    never kept on this object.
    """

    principal: str
    keytab_path: str
    impersonate_user: Optional[str] = None

    @property
    def impersonates(self) -> bool:
        return self.impersonate_user is not None


@dataclass
class AuditConfig:
    """Audit trail settings."""

    audit_logging_enabled: bool = False
    audit_log_path: str = DEFAULT_AUDIT_LOG_PATH

    def __post_init__(self):
        # Env overrides
        self.audit_logging_enabled = _env_bool(
            "AUDIT_LOGGING_ENABLED", self.audit_logging_enabled
        )
        self.audit_log_path = os.getenv("AUDIT_LOG_PATH", self.audit_log_path)


@dataclass
class RefreshConfig:
    """Delegation credential refresh configuration.

    Identity and issuer fields are optional; is_complete tells whether the
    feature can activate.
    """

    auth_user: Optional[str] = None
    auth_principal: Optional[str] = None
    auth_keytab: Optional[str] = field(default=None, repr=False)
    issuer_endpoint_url: Optional[str] = None
    issuer_principal: Optional[str] = None

    # Loop tuning
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS
    keytab_dir: Path = DEFAULT_KEYTAB_DIR
    broadcast_max_workers: int = DEFAULT_BROADCAST_MAX_WORKERS

    # Rotating JSON log files; None leaves process logging alone
    log_dir: Optional[Path] = None

    audit: AuditConfig = field(default_factory=AuditConfig)

    def __post_init__(self):
        self.auth_user = _clean(self.auth_user)
        self.auth_principal = _clean(self.auth_principal)
        self.auth_keytab = _clean(self.auth_keytab)
        self.issuer_endpoint_url = _clean(self.issuer_endpoint_url)
        self.issuer_principal = _clean(self.issuer_principal)
        self.keytab_dir = Path(self.keytab_dir)
        self.refresh_interval_seconds = float(self.refresh_interval_seconds)
        self.broadcast_max_workers = int(self.broadcast_max_workers)
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir)

        if self.refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive")
        if self.broadcast_max_workers < 1:
            raise ValueError("broadcast_max_workers must be at least 1")

    @property
    def issuer_options(self) -> Optional[IssuerOptions]:
        return IssuerOptions.make(
            {
                ISSUER_ENDPOINT_URL_KEY: self.issuer_endpoint_url,
                ISSUER_PRINCIPAL_KEY: self.issuer_principal,
            }
        )

    @property
    def is_complete(self) -> bool:
        """Principal, keytab and issuer options are all present."""
        return (
            self.auth_principal is not None
            and self.auth_keytab is not None
            and self.issuer_options is not None
        )

    def missing_keys(self) -> List[str]:
        """Names of the required keys that are absent."""
        required = [
            (AUTH_PRINCIPAL_KEY, self.auth_principal),
            (AUTH_KEYTAB_KEY, self.auth_keytab),
            (ISSUER_ENDPOINT_URL_KEY, self.issuer_endpoint_url),
            (ISSUER_PRINCIPAL_KEY, self.issuer_principal),
        ]
        return [key for key, value in required if value is None]

    @classmethod
    def from_mapping(cls, conf: Mapping[str, Any], **overrides: Any) -> "RefreshConfig":
        """Load from string-valued cluster configuration.

        Keys:
            auth-user: identity to impersonate (optional)
            auth-principal: principal to authenticate as
            auth-keytab: inline base64 key material
            issuer-endpoint-url: credential issuer endpoint
            issuer-principal: credential issuer's own principal

        Args:
            conf: Mapping of configuration keys to values
            **overrides: Loop tuning fields (refresh_interval_seconds, ...)
        """
        return cls(
            auth_user=conf.get(AUTH_USER_KEY),
            auth_principal=conf.get(AUTH_PRINCIPAL_KEY),
            auth_keytab=conf.get(AUTH_KEYTAB_KEY),
            issuer_endpoint_url=conf.get(ISSUER_ENDPOINT_URL_KEY),
            issuer_principal=conf.get(ISSUER_PRINCIPAL_KEY),
            **overrides,
        )

    @classmethod
    def load_config(cls, config_path: Optional[Path] = None) -> "RefreshConfig":
        """Load configuration from config.yaml and environment variables.

        Configuration priority (highest to lowest):
        1. Environment variables
        2. config.yaml file (under 'credential_refresh:' key)
        3. Dataclass defaults

        Env vars:
            AUTH_USER, AUTH_PRINCIPAL, AUTH_KEYTAB
            ISSUER_ENDPOINT_URL, ISSUER_PRINCIPAL
            TOKEN_REFRESH_INTERVAL_SECONDS (default: 60)
            TOKEN_REFRESH_KEYTAB_DIR (default: <tmp>/delegation_refresh)
            TOKEN_REFRESH_BROADCAST_WORKERS (default: 8)
            TOKEN_REFRESH_LOG_DIR (default: unset, no log files)
            AUDIT_LOGGING_ENABLED, AUDIT_LOG_PATH
        """
        config_path = config_path or DEFAULT_CONFIG_PATH

        yaml_data: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
        data: Dict[str, Any] = yaml_data.get("credential_refresh", {}) or {}
        audit_data: Dict[str, Any] = data.get("audit", {}) or {}
        log_dir = os.getenv("TOKEN_REFRESH_LOG_DIR", data.get("log_dir"))

        return cls(
            auth_user=os.getenv("AUTH_USER", data.get("auth_user")),
            auth_principal=os.getenv("AUTH_PRINCIPAL", data.get("auth_principal")),
            auth_keytab=os.getenv("AUTH_KEYTAB", data.get("auth_keytab")),
            issuer_endpoint_url=os.getenv(
                "ISSUER_ENDPOINT_URL", data.get("issuer_endpoint_url")
            ),
            issuer_principal=os.getenv(
                "ISSUER_PRINCIPAL", data.get("issuer_principal")
            ),
            refresh_interval_seconds=float(
                os.getenv(
                    "TOKEN_REFRESH_INTERVAL_SECONDS",
                    data.get("refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS),
                )
            ),
            keytab_dir=Path(
                os.getenv(
                    "TOKEN_REFRESH_KEYTAB_DIR",
                    data.get("keytab_dir", str(DEFAULT_KEYTAB_DIR)),
                )
            ),
            broadcast_max_workers=int(
                os.getenv(
                    "TOKEN_REFRESH_BROADCAST_WORKERS",
                    data.get("broadcast_max_workers", DEFAULT_BROADCAST_MAX_WORKERS),
                )
            ),
            log_dir=Path(log_dir) if log_dir else None,
            audit=AuditConfig(
                audit_logging_enabled=bool(
                    audit_data.get("audit_logging_enabled", False)
                ),
                audit_log_path=audit_data.get("audit_log_path", DEFAULT_AUDIT_LOG_PATH),
            ),
        )
