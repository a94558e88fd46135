import json

import pytest

from ablycli.core.errors import ConfigError
from ablycli.shared.config.cli import (
    CliConfig,
    CliConfigLoader,
    Credentials,
    generate_client_id,
    parse_api_key,
    resolve_credentials,
)

CONFIG = {
    "current": {"account": "work", "app": "app1"},
    "accounts": {
        "work": {
            "accessToken": "acct-token",
            "accountId": "acc-1",
            "accountName": "Work",
            "apps": {"app1": {"apiKey": "app1.key1:secret1"}},
        }
    },
    "settings": {"watchdogSeconds": 3, "dedupeWindowMs": 250},
}


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "config.json").write_text(json.dumps(CONFIG), encoding="utf-8")
    return tmp_path


def test_loader_reads_accounts_and_settings(config_dir):
    config = CliConfigLoader(config_dir).load()

    assert config.current_account == "work"
    assert config.current_app == "app1"
    assert config.account().access_token == "acct-token"
    assert config.api_key_for("app1") == "app1.key1:secret1"
    assert config.settings.watchdog_seconds == 3.0
    assert config.settings.dedupe_window_ms == 250.0


def test_missing_file_gives_defaults(tmp_path):
    config = CliConfigLoader(tmp_path).load()

    assert config.accounts == {}
    assert config.account() is None
    assert config.settings.watchdog_seconds == 5.0


def test_config_dir_from_environment(config_dir, monkeypatch):
    monkeypatch.setenv(CliConfigLoader.CONFIG_DIR_ENV, str(config_dir))
    assert CliConfigLoader().path == config_dir / "config.json"


def test_invalid_document_is_still_used(tmp_path):
    document = {
        "accounts": {"broken": {"apps": {}}, "ok": {"accessToken": "t"}},
        "settings": {"watchdogSeconds": "soon"},
    }
    (tmp_path / "config.json").write_text(json.dumps(document), encoding="utf-8")

    config = CliConfigLoader(tmp_path).load()

    assert list(config.accounts) == ["ok"]
    assert config.settings.watchdog_seconds == 5.0


def test_unparseable_file_gives_defaults(tmp_path):
    (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
    assert CliConfigLoader(tmp_path).load().accounts == {}


def test_parse_api_key():
    assert parse_api_key("app.key:secret") == ("app", "key", "secret")
    assert parse_api_key("app.key") is None
    assert parse_api_key("appkey:secret") is None
    assert parse_api_key(".key:secret") is None
    assert parse_api_key(None) is None


def test_flag_beats_environment_beats_config(config_dir):
    config = CliConfigLoader(config_dir).load()

    from_config = resolve_credentials(config, env={})
    assert from_config.api_key == "app1.key1:secret1"
    assert from_config.access_token == "acct-token"
    assert from_config.app_id == "app1"

    env = {"ABLY_API_KEY": "env.key:s", "ABLY_ACCESS_TOKEN": "env-token"}
    from_env = resolve_credentials(config, env=env)
    assert from_env.api_key == "env.key:s"
    assert from_env.access_token == "env-token"

    from_flag = resolve_credentials(config, api_key="flag.key:s", env=env)
    assert from_flag.api_key == "flag.key:s"


def test_app_id_derived_from_api_key():
    credentials = resolve_credentials(CliConfig(), api_key="myapp.k:s", env={})
    assert credentials.app_id == "myapp"


def test_client_id_generation_and_none():
    generated = resolve_credentials(CliConfig(), env={})
    assert generated.client_id.startswith("ably-cli-")
    assert len(generated.client_id) == len("ably-cli-") + 8

    disabled = resolve_credentials(CliConfig(), client_id="none", env={})
    assert disabled.client_id is None

    explicit = resolve_credentials(CliConfig(), env={"ABLY_CLIENT_ID": "robot"})
    assert explicit.client_id == "robot"


def test_generated_client_ids_differ():
    assert generate_client_id() != generate_client_id()


def test_missing_credentials_raise_config_error():
    with pytest.raises(ConfigError):
        Credentials().require_realtime_auth()
    with pytest.raises(ConfigError):
        Credentials().require_access_token()

    Credentials(token="tok").require_realtime_auth()
    assert Credentials(access_token="t").require_access_token() == "t"
