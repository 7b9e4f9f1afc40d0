"""
Tests for the Telegram admin commands.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from bot.handlers.admin import config_handler, parse_setting, set_handler, status_handler
from shared.config import settings
from conftest import DAI, USDC, WAD

ADMIN_CHAT = 42


@pytest.fixture(autouse=True)
def admins(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_CHAT_IDS", [ADMIN_CHAT])


def make_update(chat_id: int):
    update = MagicMock()
    update.effective_chat.id = chat_id
    update.message.reply_text = AsyncMock()
    return update


@pytest.fixture
def context(monitor):
    ctx = MagicMock()
    ctx.application.bot_data = {"monitor": monitor}
    ctx.args = []
    return ctx


def replied(update) -> str:
    return update.message.reply_text.await_args.args[0]


class TestReadCommands:
    async def test_status_for_admin(self, context):
        update = make_update(ADMIN_CHAT)
        await status_handler(update, context)
        assert "Cursor: 100" in replied(update)

    async def test_status_for_stranger(self, context):
        update = make_update(7)
        await status_handler(update, context)
        assert replied(update) == "Unauthorized."

    async def test_config_hides_token(self, context):
        update = make_update(ADMIN_CHAT)
        await config_handler(update, context)
        assert "test-token" not in replied(update)
        assert "cooldown_seconds: 3600" in replied(update)


class TestSet:
    async def test_admin_sets_value(self, context, monitor):
        context.args = ["min_liquidation_amount", str(5000 * WAD)]
        update = make_update(ADMIN_CHAT)
        await set_handler(update, context)
        assert monitor.config.current.min_liquidation_amount == 5000 * WAD
        assert replied(update) == "Updated min_liquidation_amount."

    async def test_stranger_cannot_set(self, context, monitor):
        context.args = ["cooldown_seconds", "1"]
        update = make_update(7)
        await set_handler(update, context)
        assert replied(update) == "Unauthorized."
        assert monitor.config.current.cooldown_seconds == 3600

    async def test_invalid_value_is_rejected(self, context, monitor):
        context.args = ["cooldown_seconds", "soon"]
        update = make_update(ADMIN_CHAT)
        await set_handler(update, context)
        assert replied(update).startswith("Rejected:")

    async def test_usage(self, context):
        update = make_update(ADMIN_CHAT)
        await set_handler(update, context)
        assert replied(update).startswith("Usage:")


def test_list_fields_are_comma_separated():
    assert parse_setting("monitored_assets", [f"{DAI},", USDC]) == [DAI, USDC]
    assert parse_setting("cooldown_seconds", ["60"]) == "60"
