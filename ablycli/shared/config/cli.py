"""
CLI configuration loading and credential resolution.

Files:
  - ~/.ably/config.json (directory overridable with ABLY_CLI_CONFIG_DIR)

Validation:
  - The document is checked against the packaged JSON schema; problems are
    logged as warnings and the document is still used (best effort).

Precedence for every credential:
  command-line flag > environment variable > config file
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from uuid import uuid4

from jsonschema import Draft7Validator

from ablycli.core.errors import ConfigError
from ablycli.shared.logging.logger import get_logger

log = get_logger("shared.config.cli")

DEFAULT_CONTROL_HOST = "control.ably.net"
DEFAULT_WATCHDOG_SECONDS = 5.0
DEFAULT_DEDUPE_WINDOW_MS = 500.0
NO_CLIENT_ID = "none"


# ------------------------------------------------------------
# Models
# ------------------------------------------------------------

@dataclass
class AccountConfig:
    alias: str
    access_token: str
    account_id: Optional[str] = None
    account_name: Optional[str] = None
    user_email: Optional[str] = None
    apps: Dict[str, str] = field(default_factory=dict)


@dataclass
class CliSettings:
    watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS
    dedupe_window_ms: float = DEFAULT_DEDUPE_WINDOW_MS
    control_host: str = DEFAULT_CONTROL_HOST


@dataclass
class CliConfig:
    current_account: Optional[str] = None
    current_app: Optional[str] = None
    accounts: Dict[str, AccountConfig] = field(default_factory=dict)
    settings: CliSettings = field(default_factory=CliSettings)

    def account(self) -> Optional[AccountConfig]:
        if self.current_account:
            return self.accounts.get(self.current_account)
        return None

    def api_key_for(self, app_id: Optional[str]) -> Optional[str]:
        account = self.account()
        if not account or not app_id:
            return None
        return account.apps.get(app_id)


@dataclass
class Credentials:
    api_key: Optional[str] = None
    token: Optional[str] = None
    access_token: Optional[str] = None
    client_id: Optional[str] = None
    app_id: Optional[str] = None
    control_host: str = DEFAULT_CONTROL_HOST

    def require_realtime_auth(self) -> None:
        if not self.api_key and not self.token:
            raise ConfigError(
                "No app or API key configured for this command. "
                "Provide an API key with --api-key, a token with --token, "
                "or set the ABLY_API_KEY environment variable."
            )

    def require_access_token(self) -> str:
        if not self.access_token:
            raise ConfigError(
                "No access token configured. Provide one with --access-token "
                "or set the ABLY_ACCESS_TOKEN environment variable."
            )
        return self.access_token


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def parse_api_key(api_key: Optional[str]) -> Optional[Tuple[str, str, str]]:
    """
    Split an API key of the form APP_ID.KEY_ID:KEY_SECRET.
    Returns None when the key is malformed.
    """
    if not api_key:
        return None

    parts = api_key.split(":")
    if len(parts) != 2:
        log.debug("Invalid API key format: missing colon separator")
        return None

    key_parts = parts[0].split(".")
    if len(key_parts) != 2:
        log.debug("Invalid API key format: missing period separator in key")
        return None

    app_id, key_id = key_parts
    secret = parts[1]
    if not app_id or not key_id or not secret:
        log.debug("Invalid API key format: missing required parts")
        return None

    return app_id, key_id, secret


def generate_client_id() -> str:
    return f"ably-cli-{uuid4().hex[:8]}"


def _as_float(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        log.warning(f"{name} must be numeric; using default {default}")
        return default


# ------------------------------------------------------------
# Loader
# ------------------------------------------------------------

class CliConfigLoader:
    """
    Loads and validates the CLI config document. Read-only: the CLI never
    writes this file.
    """

    CONFIG_DIR_ENV = "ABLY_CLI_CONFIG_DIR"
    FILE_NAME = "config.json"
    SCHEMA_PATH = Path(__file__).parent / "config.schema.json"

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        if config_dir is None:
            raw = os.getenv(self.CONFIG_DIR_ENV)
            config_dir = Path(raw) if raw else Path.home() / ".ably"
        self.path = Path(config_dir) / self.FILE_NAME

    def _load_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            log.debug(f"Config not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
                log.warning("Config root is not an object; ignoring")
        except (OSError, ValueError) as e:
            log.warning(f"Failed to load config ({e}); using defaults")

        return {}

    def _validate(self, payload: Dict[str, Any]) -> None:
        try:
            schema = json.loads(self.SCHEMA_PATH.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning(f"Failed to load config schema ({e}); skipping validation")
            return

        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))

        for err in errors:
            loc = "/".join(str(p) for p in err.path)
            log.warning(f"Config validation warning at '{loc}': {err.message}")

    @staticmethod
    def _load_account(alias: str, raw: Any) -> Optional[AccountConfig]:
        if not isinstance(raw, dict):
            return None

        token = raw.get("accessToken")
        if not isinstance(token, str) or not token:
            log.warning(f"Account '{alias}' has no accessToken; ignoring")
            return None

        apps: Dict[str, str] = {}
        for app_id, app_cfg in (raw.get("apps") or {}).items():
            if isinstance(app_cfg, dict) and isinstance(app_cfg.get("apiKey"), str):
                apps[str(app_id)] = app_cfg["apiKey"]

        return AccountConfig(
            alias=alias,
            access_token=token,
            account_id=raw.get("accountId"),
            account_name=raw.get("accountName"),
            user_email=raw.get("userEmail"),
            apps=apps,
        )

    @staticmethod
    def _load_settings(raw: Any) -> CliSettings:
        if not isinstance(raw, dict):
            return CliSettings()

        host = raw.get("controlHost", DEFAULT_CONTROL_HOST)
        return CliSettings(
            watchdog_seconds=_as_float(
                raw.get("watchdogSeconds"), DEFAULT_WATCHDOG_SECONDS, "watchdogSeconds"
            ),
            dedupe_window_ms=_as_float(
                raw.get("dedupeWindowMs"), DEFAULT_DEDUPE_WINDOW_MS, "dedupeWindowMs"
            ),
            control_host=host if isinstance(host, str) and host else DEFAULT_CONTROL_HOST,
        )

    def load(self) -> CliConfig:
        raw = self._load_json(self.path)
        if raw:
            self._validate(raw)

        accounts: Dict[str, AccountConfig] = {}
        raw_accounts = raw.get("accounts")
        if isinstance(raw_accounts, dict):
            for alias, entry in raw_accounts.items():
                account = self._load_account(str(alias), entry)
                if account:
                    accounts[account.alias] = account

        current = raw.get("current") if isinstance(raw.get("current"), dict) else {}

        config = CliConfig(
            current_account=current.get("account"),
            current_app=current.get("app"),
            accounts=accounts,
            settings=self._load_settings(raw.get("settings")),
        )
        log.debug(
            f"Loaded config: {len(accounts)} account(s), "
            f"current account={config.current_account}, app={config.current_app}"
        )
        return config


# ------------------------------------------------------------
# Credential resolution
# ------------------------------------------------------------

def resolve_credentials(
    config: CliConfig,
    *,
    api_key: Optional[str] = None,
    token: Optional[str] = None,
    access_token: Optional[str] = None,
    client_id: Optional[str] = None,
    app_id: Optional[str] = None,
    control_host: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Credentials:
    env = os.environ if env is None else env
    account = config.account()

    resolved_app = app_id or env.get("ABLY_APP_ID") or config.current_app
    resolved_key = (
        api_key
        or env.get("ABLY_API_KEY")
        or config.api_key_for(resolved_app)
    )

    # An API key always names its own app
    parsed = parse_api_key(resolved_key)
    if parsed and not resolved_app:
        resolved_app = parsed[0]

    resolved_client = client_id or env.get("ABLY_CLIENT_ID")
    if resolved_client and resolved_client.lower() == NO_CLIENT_ID:
        resolved_client = None
    elif not resolved_client:
        resolved_client = generate_client_id()

    return Credentials(
        api_key=resolved_key,
        token=token or env.get("ABLY_TOKEN"),
        access_token=(
            access_token
            or env.get("ABLY_ACCESS_TOKEN")
            or (account.access_token if account else None)
        ),
        client_id=resolved_client,
        app_id=resolved_app,
        control_host=(
            control_host
            or env.get("ABLY_CONTROL_HOST")
            or config.settings.control_host
        ),
    )


__all__ = [
    "AccountConfig",
    "CliSettings",
    "CliConfig",
    "CliConfigLoader",
    "Credentials",
    "parse_api_key",
    "generate_client_id",
    "resolve_credentials",
]
