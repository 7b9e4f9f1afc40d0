"""
Tests for settings loading and admin-guarded runtime configuration.
"""
import pytest

from agents.liquidation.config import ConfigError, ConfigStore, Unauthorized, load_monitor_config
from shared.config import Settings
from conftest import DAI, POOL, WAD, make_config


def settings(**overrides) -> Settings:
    values = dict(
        RPC_URL="http://localhost:8545",
        AAVE_POOL_ADDRESS=POOL,
        AAVE_POOL_DATA_PROVIDER_ADDRESS="0x69fa688f1dc47d4b5d8029d5a35fb7a548310654",
        TELEGRAM_BOT_TOKEN="123:abc",
        TELEGRAM_CHAT_ID="-1001",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestLoad:
    def test_defaults(self):
        cfg = load_monitor_config(settings())
        assert cfg.protocol_contract_addresses == frozenset({POOL})
        assert cfg.min_liquidation_amount == 1000 * WAD
        assert cfg.cooldown_seconds == 3600
        assert cfg.start_block == "latest"

    def test_missing_telegram_credentials(self):
        with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
            load_monitor_config(settings(TELEGRAM_BOT_TOKEN=""))

    def test_missing_rpc_url(self):
        with pytest.raises(ConfigError, match="RPC_URL"):
            load_monitor_config(settings(RPC_URL=""))

    def test_invalid_address(self):
        with pytest.raises(ConfigError):
            load_monitor_config(settings(PROTOCOL_CONTRACT_ADDRESSES=["0xnothex"]))

    def test_numeric_start_block(self):
        assert load_monitor_config(settings(START_BLOCK="42000000")).start_block == 42_000_000

    def test_default_api_key_rejected_in_production(self):
        with pytest.raises(ConfigError, match="API_SECRET_KEY"):
            load_monitor_config(settings(ENVIRONMENT="production"))

    def test_custom_api_key_accepted_in_production(self):
        cfg = load_monitor_config(settings(ENVIRONMENT="production", API_SECRET_KEY="s3cret"))
        assert cfg.cooldown_seconds == 3600


class TestListSettings:
    def test_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("PROTOCOL_CONTRACT_ADDRESSES", f"{POOL}, {DAI}")
        monkeypatch.setenv("ADMIN_CHAT_IDS", "1, 2")
        s = Settings(_env_file=None)
        assert s.PROTOCOL_CONTRACT_ADDRESSES == [POOL, DAI]
        assert s.ADMIN_CHAT_IDS == [1, 2]

    def test_json_env_still_accepted(self, monkeypatch):
        monkeypatch.setenv("MONITORED_ASSETS", f'["{DAI}"]')
        monkeypatch.setenv("ADMIN_CHAT_IDS", "[7]")
        s = Settings(_env_file=None)
        assert s.MONITORED_ASSETS == [DAI]
        assert s.ADMIN_CHAT_IDS == [7]

    def test_single_value_and_empty(self, monkeypatch):
        monkeypatch.setenv("ADMIN_CHAT_IDS", "42")
        monkeypatch.setenv("MONITORED_ASSETS", "")
        s = Settings(_env_file=None)
        assert s.ADMIN_CHAT_IDS == [42]
        assert s.MONITORED_ASSETS == []


class TestUpdate:
    def test_non_admin_is_rejected(self):
        store = ConfigStore(make_config())
        with pytest.raises(Unauthorized):
            store.update({"cooldown_seconds": 60}, is_admin=False)
        assert store.current.cooldown_seconds == 3600

    def test_admin_update_replaces_config(self):
        store = ConfigStore(make_config())
        before = store.current
        store.update({"cooldown_seconds": 60, "monitored_assets": [DAI.upper().replace("0X", "0x")]}, is_admin=True)
        assert store.current.cooldown_seconds == 60
        assert store.current.monitored_assets == (DAI,)
        assert before.cooldown_seconds == 3600

    def test_unknown_field_is_rejected(self):
        store = ConfigStore(make_config())
        with pytest.raises(ConfigError, match="backfill_depth"):
            store.update({"backfill_depth": 5}, is_admin=True)

    def test_invalid_value_keeps_old_config(self):
        store = ConfigStore(make_config())
        with pytest.raises(ConfigError):
            store.update({"protocol_contract_addresses": []}, is_admin=True)
        assert store.current.protocol_contract_addresses == frozenset({POOL})

    def test_public_view_hides_token(self):
        view = make_config().public_view()
        assert "telegram_bot_token" not in view
        assert view["protocol_contract_addresses"] == [POOL]
