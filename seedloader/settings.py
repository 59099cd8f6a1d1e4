"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError

DEFAULT_API_VERSION = "60.0"
DEFAULT_LOGIN_URL = "https://login.salesforce.com"

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


def parse_bool(name: str, value: Any, default: bool = False) -> bool:
    """Parse a boolean flag (environment variable or JSON value), rejecting anything ambiguous."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be true or false, got '{value}'")


@dataclass(frozen=True)
class RunSettings:
    """Settings for one invocation of the loader."""
    env: str = "dev"
    dry_run: bool = False
    config_dir: str = "./config"
    data_root: str = "."
    meta_dir: str = "./meta-data"
    report_dir: Optional[str] = None
    refresh_metadata: bool = False

    # Platform credentials
    login_url: str = DEFAULT_LOGIN_URL
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    instance_url: Optional[str] = None
    access_token: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunSettings":
        """Build settings from environment variables."""
        env = os.environ if environ is None else environ

        return cls(
            env=env.get("LOADER_ENV") or env.get("NODE_ENV") or "dev",
            dry_run=parse_bool("DRY_RUN", env.get("DRY_RUN")),
            config_dir=env.get("SEED_CONFIG_DIR", "./config"),
            data_root=env.get("SEED_DATA_ROOT", "."),
            meta_dir=env.get("SEED_META_DIR", "./meta-data"),
            report_dir=env.get("SEED_REPORT_DIR") or None,
            refresh_metadata=parse_bool("REFRESH_METADATA", env.get("REFRESH_METADATA")),
            login_url=env.get("SF_LOGIN_URL") or DEFAULT_LOGIN_URL,
            username=env.get("SF_USERNAME"),
            password=env.get("SF_PASSWORD"),
            client_id=env.get("SF_CLIENT_ID"),
            client_secret=env.get("SF_CLIENT_SECRET"),
            instance_url=env.get("SF_INSTANCE_URL"),
            access_token=env.get("SF_ACCESS_TOKEN"),
            api_version=env.get("SF_API_VERSION") or DEFAULT_API_VERSION,
        )

    def with_overrides(self, **overrides: Any) -> "RunSettings":
        """Return a copy with the given non-None values replaced (CLI flags)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (secrets masked)."""
        return {
            "env": self.env,
            "dry_run": self.dry_run,
            "config_dir": self.config_dir,
            "data_root": self.data_root,
            "meta_dir": self.meta_dir,
            "report_dir": self.report_dir,
            "refresh_metadata": self.refresh_metadata,
            "login_url": self.login_url,
            "username": self.username,
            "password": "***" if self.password else None,
            "instance_url": self.instance_url,
            "access_token": "***" if self.access_token else None,
            "api_version": self.api_version,
        }
