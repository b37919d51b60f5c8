"""Tests for solscalp.notify.email_notifier — SMTP sends are stubbed out."""

import smtplib
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from solscalp.config import Config
from solscalp.errors import NotificationError, PersistenceError
from solscalp.notify.email_notifier import EmailNotifier, PlanNotifier
from solscalp.plans import state_machine as sm
from solscalp.plans.models import (
    PENDING,
    MarketOrder,
    PartialProfit,
    TokenInfo,
    TradePlan,
    UserSettings,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _make_config(smtp_host: str = "smtp.example.com") -> Config:
    return Config(
        jupiter_api_key="jup-test-key",
        wallet_encryption_key="wallet-secret",
        birdeye_api_key="",
        cron_secret="",
        db_path="data/solscalp.db",
        log_level="INFO",
        health_port=8080,
        monitor_interval_seconds=60,
        plan_delay_ms=0,
        monitor_concurrency=1,
        candle_interval="15m",
        candle_lookback_hours=24,
        smtp_host=smtp_host,
        email_from="SolScalp <alerts@example.com>",
    )


def _active_plan() -> TradePlan:
    plan = TradePlan(
        id="plan-1",
        user_id="user-1",
        token=TokenInfo(mint="TokenMint1111111111111111111111111111111111", symbol="TKN", decimals=6),
        amount_sol=1.0,
        order=MarketOrder(),
        stop_loss_percent=5.0,
        take_profit_percent=10.0,
        status=PENDING,
        created_at=NOW,
    )
    return sm.activate(plan, 1.0, 1_000_000, "sig-buy", NOW)


class _Settings:
    def __init__(self, email=None, fail: bool = False) -> None:
        self._email = email
        self._fail = fail

    def get_settings(self, user_id: str) -> UserSettings:
        if self._fail:
            raise PersistenceError("db locked")
        return UserSettings(user_id=user_id, notification_email=self._email)


class TestEmailNotifier:
    @pytest.mark.asyncio
    async def test_disabled_returns_false(self):
        notifier = EmailNotifier(_make_config(smtp_host=""))
        assert notifier.enabled is False
        assert await notifier.notify_trade_entry("a@example.com", _active_plan()) is False

    @pytest.mark.asyncio
    async def test_entry_message(self, monkeypatch):
        notifier = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(notifier, "_smtp_send", sent.append)

        assert await notifier.notify_trade_entry("a@example.com", _active_plan()) is True
        msg = sent[0]
        assert msg["To"] == "a@example.com"
        assert msg["Subject"] == "Trade Entry: TKN (Market Order)"
        assert "sig-buy" in msg.get_content()

    @pytest.mark.asyncio
    async def test_completed_message(self, monkeypatch):
        notifier = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(notifier, "_smtp_send", sent.append)
        done = sm.complete(_active_plan(), sm.TAKE_PROFIT, 1.1, "sig-sell", 1.1, NOW)

        await notifier.notify_trade_completed("a@example.com", done)
        assert sent[0]["Subject"] == "Trade Executed: TKN Take Profit (+10.00%)"
        assert "sig-sell" in sent[0].get_content()

    @pytest.mark.asyncio
    async def test_completed_message_mentions_partial_sale(self, monkeypatch):
        notifier = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(notifier, "_smtp_send", sent.append)
        plan = replace(_active_plan(), partial_profit=PartialProfit(trigger_percent=5.0))
        plan = sm.take_partial_profit(plan, 500_000, 0.53, "sig-partial")
        done = sm.complete(plan, sm.TAKE_PROFIT, 1.1, "sig-sell", 0.55, NOW)

        await notifier.notify_trade_completed("a@example.com", done)
        assert "Partial sale: 0.5300 SOL" in sent[0].get_content()

    @pytest.mark.asyncio
    async def test_smtp_failure_raises(self, monkeypatch):
        notifier = EmailNotifier(_make_config())

        def _boom(msg):
            raise smtplib.SMTPServerDisconnected("gone")

        monkeypatch.setattr(notifier, "_smtp_send", _boom)

        with pytest.raises(NotificationError):
            await notifier.notify_trade_entry("a@example.com", _active_plan())


class TestPlanNotifier:
    @pytest.mark.asyncio
    async def test_uses_settings_address(self, monkeypatch):
        email = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(email, "_smtp_send", sent.append)

        await PlanNotifier(email, _Settings("owner@example.com")).trade_entry(_active_plan())
        assert sent[0]["To"] == "owner@example.com"

    @pytest.mark.asyncio
    async def test_no_address_skips(self, monkeypatch):
        email = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(email, "_smtp_send", sent.append)

        await PlanNotifier(email, _Settings(None)).trade_entry(_active_plan())
        assert sent == []

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, monkeypatch):
        email = EmailNotifier(_make_config())

        def _boom(msg):
            raise OSError("network unreachable")

        monkeypatch.setattr(email, "_smtp_send", _boom)

        await PlanNotifier(email, _Settings("owner@example.com")).trade_entry(_active_plan())
        await PlanNotifier(email, _Settings(fail=True)).trade_entry(_active_plan())

    @pytest.mark.asyncio
    async def test_malformed_address_does_not_raise(self, monkeypatch):
        email = EmailNotifier(_make_config())
        sent = []
        monkeypatch.setattr(email, "_smtp_send", sent.append)

        notifier = PlanNotifier(email, _Settings("owner@example.com\r\nBcc: x@example.com"))
        await notifier.trade_entry(_active_plan())
        assert sent == []

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_raise(self, monkeypatch):
        email = EmailNotifier(_make_config())

        def _boom(msg):
            raise RuntimeError("smtp library bug")

        monkeypatch.setattr(email, "_smtp_send", _boom)

        await PlanNotifier(email, _Settings("owner@example.com")).trade_completed(_active_plan())
