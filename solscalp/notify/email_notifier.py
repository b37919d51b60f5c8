"""Trade e-mail notifications over SMTP.

Sends are blocking ``smtplib`` calls run in a worker thread.  Failures
raise ``NotificationError``; callers log and drop them.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from solscalp.config import Config
from solscalp.errors import NotificationError, PersistenceError
from solscalp.plans.models import TradePlan
from solscalp.repos.settings_repo import SettingsRepo

logger = logging.getLogger("solscalp.notify")

_TRIGGER_LABELS = {
    "stop_loss": "Stop Loss",
    "take_profit": "Take Profit",
    "trailing_stop": "Trailing Stop",
    "time_exit": "Time Exit",
    "profit_protection": "Profit Protection",
}


def _format_price(price) -> str:
    if price is None:
        return "n/a"
    return f"${price:.8g}"


class EmailNotifier:
    """Sends trade entry / exit e-mails through the configured SMTP server."""

    def __init__(self, config: Config) -> None:
        self._host = config.smtp_host
        self._port = config.smtp_port
        self._username = config.smtp_username
        self._password = config.smtp_password
        self._from = config.email_from

    @property
    def enabled(self) -> bool:
        return bool(self._host)

    async def notify_trade_entry(self, to_addr: str, plan: TradePlan) -> bool:
        order_type = "Limit Order" if plan.is_limit else "Market Order"
        subject = f"Trade Entry: {plan.token.symbol} ({order_type})"
        body = (
            f"Bought {plan.token.symbol} for {plan.amount_sol} SOL\n\n"
            f"Entry price:  {_format_price(plan.entry_price_usd)}\n"
            f"Stop loss:    {_format_price(plan.stop_loss_price)} (-{plan.stop_loss_percent}%)\n"
            f"Take profit:  {_format_price(plan.take_profit_price)} (+{plan.take_profit_percent}%)\n\n"
            f"Mint: {plan.token.mint}\n"
            f"Transaction: https://solscan.io/tx/{plan.entry_tx_signature}\n"
        )
        return await self._send(to_addr, subject, body)

    async def notify_trade_completed(self, to_addr: str, plan: TradePlan) -> bool:
        label = _TRIGGER_LABELS.get(plan.triggered_by or "", plan.triggered_by or "Exit")
        pnl_pct = plan.profit_loss_percent or 0.0
        pnl_sol = plan.profit_loss_sol or 0.0
        outcome = "Profit" if pnl_sol >= 0 else "Loss"
        subject = f"Trade Executed: {plan.token.symbol} {label} ({pnl_pct:+.2f}%)"
        partial = ""
        if plan.partial_profit_taken:
            partial = f"Partial sale: {plan.partial_sol_received:.4f} SOL (included)\n"
        body = (
            f"{plan.token.symbol} position closed by {label}\n\n"
            f"Entry price:  {_format_price(plan.entry_price_usd)}\n"
            f"Exit price:   {_format_price(plan.exit_price_usd)}\n"
            f"{outcome}:       {pnl_sol:+.4f} SOL ({pnl_pct:+.2f}%)\n"
            f"{partial}\n"
            f"Mint: {plan.token.mint}\n"
            f"Transaction: https://solscan.io/tx/{plan.exit_tx_signature}\n"
        )
        return await self._send(to_addr, subject, body)

    async def _send(self, to_addr: str, subject: str, body: str) -> bool:
        """Return ``False`` when e-mail is disabled, ``True`` once sent.

        Raises:
            NotificationError: the SMTP exchange failed.
        """
        if not self.enabled:
            logger.debug("E-mail disabled; skipping '%s'", subject)
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._from
        msg["To"] = to_addr
        msg.set_content(body)

        try:
            await asyncio.to_thread(self._smtp_send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"E-mail to {to_addr} failed: {exc}") from exc

        logger.info("Email sent: to=%s subject=%s", to_addr, subject)
        return True

    def _smtp_send(self, msg: EmailMessage) -> None:
        """Blocking SMTP send (called via to_thread)."""
        context = ssl.create_default_context()
        with smtplib.SMTP(self._host, self._port, timeout=30) as server:
            server.starttls(context=context)
            if self._username:
                server.login(self._username, self._password)
            server.send_message(msg)


class PlanNotifier:
    """Best-effort trade e-mails addressed from the user's settings.

    Never raises: trade state is already committed when these run.
    """

    def __init__(self, notifier: EmailNotifier, settings: SettingsRepo) -> None:
        self._notifier = notifier
        self._settings = settings

    async def trade_entry(self, plan: TradePlan) -> None:
        await self._deliver("entry", plan)

    async def trade_completed(self, plan: TradePlan) -> None:
        await self._deliver("completed", plan)

    async def _deliver(self, kind: str, plan: TradePlan) -> None:
        if not self._notifier.enabled:
            return
        try:
            to_addr = self._settings.get_settings(plan.user_id).notification_email
            if not to_addr:
                return
            if kind == "entry":
                await self._notifier.notify_trade_entry(to_addr, plan)
            else:
                await self._notifier.notify_trade_completed(to_addr, plan)
        except (NotificationError, PersistenceError) as exc:
            logger.warning("Trade %s e-mail for plan %s not sent: %s", kind, plan.id, exc)
        except Exception:
            logger.exception("Trade %s e-mail for plan %s failed", kind, plan.id)
