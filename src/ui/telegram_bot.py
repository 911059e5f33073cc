"""
Telegram bot for human-in-the-loop plan approval and session reports.

Provides two main classes:

    - **TelegramNotifier**: Lightweight sender. Does not poll; pushes plan
      previews (with Approve / Reject buttons) and session reports to one
      chat through the Bot API.
    - **TelegramBot**: Polling bot that routes button presses and the
      ``/approve_{id}`` / ``/reject_{id}`` commands to async callbacks, and
      answers ``/status {id}`` from a session lookup.

Configuration errors (missing token / chat ID) raise immediately.  Network
errors during delivery are logged and do not crash the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from src.models import ExecutionPlan, Session
from src.utils import utc_now

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Telegram message limits
# ---------------------------------------------------------------------------
_MAX_MESSAGE_LENGTH = 4096

DecisionCallback = Callable[[str], Awaitable[None]]
SessionLookup = Callable[[str], Awaitable[Optional[Session]]]


def _truncate(text: str, max_length: int = _MAX_MESSAGE_LENGTH) -> str:
    """Truncate *text* to fit within Telegram's message size limit."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n...(truncated)"


# =============================================================================
# MESSAGE FORMATTING
# =============================================================================


def format_plan_preview(session_id: str, intent: str, plan: ExecutionPlan) -> str:
    """Plain-text plan preview shown above the Approve / Reject buttons."""
    lines = [
        "Campaign Plan | awaiting approval",
        "=" * 40,
        "",
        f"Intent: {intent}",
        f"Session: {session_id}",
        "",
        f"Phase 1 (parallel): {', '.join(plan.parallel_phase_1) or '(none)'}",
        f"Phase 2 (after phase 1): {', '.join(plan.sequential_phase_2) or '(none)'}",
    ]
    if plan.summary:
        lines += ["", plan.summary]
    return "\n".join(lines)


def format_session_report(session: Session) -> str:
    """Status, per-node state and asset titles of a session."""
    lines = [f"Session {session.session_id}: {session.status.value}"]
    for node in session.nodes.values():
        lines.append(f"  {node.id} {node.name}: {node.status.value} ({node.progress}%)")
    if session.assets:
        lines.append("Assets:")
        lines += [f"  - {asset.title} [{asset.generated_by}]" for asset in session.assets]
    if session.final_result:
        lines.append(session.final_result)
    if session.error:
        lines.append(f"Error: {session.error}")
    return "\n".join(lines)


def _decision_keyboard(session_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("Approve", callback_data=f"approve:{session_id}"),
                InlineKeyboardButton("Reject", callback_data=f"reject:{session_id}"),
            ]
        ]
    )


# =============================================================================
# TELEGRAM NOTIFIER (lightweight, no polling)
# =============================================================================


class TelegramNotifier:
    """
    Lightweight Telegram notification sender.

    Args:
        bot_token: Telegram Bot API token (from BotFather).
        chat_id: Target chat / group / channel ID.

    Usage::

        notifier = TelegramNotifier(token, chat_id)
        await notifier.send_plan_preview(session_id, intent, plan)
    """

    def __init__(self, bot_token: str, chat_id: str) -> None:
        if not bot_token:
            raise ValueError("TelegramNotifier requires a non-empty bot_token")
        if not chat_id:
            raise ValueError("TelegramNotifier requires a non-empty chat_id")

        self._chat_id: str = chat_id
        self._bot: Any = Bot(token=bot_token)

    async def send(self, message: str) -> None:
        """Send a plain text message to the configured chat."""
        try:
            await self._bot.send_message(chat_id=self._chat_id, text=_truncate(message))
        except Exception:
            logger.exception("[TELEGRAM] Failed to send message to chat_id=%s", self._chat_id)

    async def send_plan_preview(
        self, session_id: str, intent: str, plan: ExecutionPlan
    ) -> None:
        """Send the plan with Approve / Reject inline buttons.

        Callback data is ``approve:{session_id}`` / ``reject:{session_id}``.
        """
        try:
            await self._bot.send_message(
                chat_id=self._chat_id,
                text=_truncate(format_plan_preview(session_id, intent, plan)),
                reply_markup=_decision_keyboard(session_id),
            )
        except Exception:
            logger.exception("[TELEGRAM] Failed to send plan preview")

    async def send_session_report(self, session: Session) -> None:
        await self.send(format_session_report(session))


# =============================================================================
# TELEGRAM BOT (polling, routes decisions)
# =============================================================================


class TelegramBot:
    """
    Interactive Telegram bot for plan approvals.

    Supports:
        - ``/start`` -- welcome message
        - ``/status {session_id}`` -- session report
        - ``/approve_{id}`` / ``/reject_{id}`` -- decide on a plan
        - Inline button callbacks for approve / reject

    Args:
        bot_token: Telegram Bot API token.
        chat_id: Authorized chat ID; updates from other chats are ignored.
        on_approve: ``async (session_id) -> None`` called on approval.
        on_reject: ``async (session_id) -> None`` called on rejection.
        session_lookup: ``async (session_id) -> Session | None`` for
            ``/status``.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        on_approve: Optional[DecisionCallback] = None,
        on_reject: Optional[DecisionCallback] = None,
        session_lookup: Optional[SessionLookup] = None,
    ) -> None:
        if not bot_token:
            raise ValueError("TelegramBot requires a non-empty bot_token")
        if not chat_id:
            raise ValueError("TelegramBot requires a non-empty chat_id")

        self._bot_token: str = bot_token
        self._chat_id: str = chat_id
        self._on_approve = on_approve
        self._on_reject = on_reject
        self._session_lookup = session_lookup

        self._app: Any = None  # telegram.ext.Application (set in start())
        self._pending_approvals: Dict[str, Dict[str, Any]] = {}
        self._started: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Build the ``Application``, register handlers, and start polling."""
        if self._started:
            logger.warning("[TELEGRAM] Bot is already running, ignoring start()")
            return

        self._app = Application.builder().token(self._bot_token).build()
        self._setup_handlers(self._app)

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)  # type: ignore[union-attr]
        self._started = True
        logger.info("[TELEGRAM] Bot started polling (chat_id=%s)", self._chat_id)

    async def stop(self) -> None:
        """Stop polling and shut down the ``Application``."""
        if not self._started:
            return

        try:
            if self._app and self._app.updater:
                await self._app.updater.stop()
            if self._app:
                await self._app.stop()
                await self._app.shutdown()
            self._started = False
            logger.info("[TELEGRAM] Bot stopped")
        except Exception:
            logger.exception("[TELEGRAM] Error during bot shutdown")

    def _setup_handlers(self, app: Any) -> None:
        app.add_handler(CommandHandler("start", self._cmd_start))
        app.add_handler(CommandHandler("status", self._cmd_status))
        app.add_handler(MessageHandler(filters.Regex(r"^/approve_\S+"), self._handle_command_decision))
        app.add_handler(MessageHandler(filters.Regex(r"^/reject_\S+"), self._handle_command_decision))
        app.add_handler(CallbackQueryHandler(self._handle_callback))
        app.add_error_handler(self._error_handler)

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def _cmd_start(self, update: Any, context: Any) -> None:
        if not self._is_authorized(update.effective_chat.id):
            return
        await update.message.reply_text(
            "Campaign Orchestrator -- plan approval\n\n"
            "/status {session_id} -- session report\n"
            "/approve_{session_id} -- approve a plan\n"
            "/reject_{session_id}  -- reject a plan\n"
            f"Pending approvals: {len(self._pending_approvals)}"
        )

    async def _cmd_status(self, update: Any, context: Any) -> None:
        """Handle ``/status {session_id}``."""
        if not self._is_authorized(update.effective_chat.id):
            return
        args = getattr(context, "args", None) or []
        if not args or self._session_lookup is None:
            await update.message.reply_text("Usage: /status {session_id}")
            return

        session = await self._session_lookup(args[0])
        if session is None:
            await update.message.reply_text(f"Session not found: {args[0]}")
            return
        await update.message.reply_text(_truncate(format_session_report(session)))

    async def _handle_command_decision(self, update: Any, context: Any) -> None:
        """Handle ``/approve_{id}`` and ``/reject_{id}`` text commands."""
        if not self._is_authorized(update.effective_chat.id):
            return
        command, _, session_id = update.message.text.lstrip("/").partition("_")
        ok = await self.dispatch_decision(command, session_id.strip())
        verdict = "APPROVED" if command == "approve" else "REJECTED"
        suffix = "" if ok else " (failed, see logs)"
        await update.message.reply_text(f"{session_id}: {verdict}{suffix}")

    # ------------------------------------------------------------------
    # Inline button callback handler
    # ------------------------------------------------------------------

    async def _handle_callback(self, update: Any, context: Any) -> None:
        """Handle inline Approve / Reject presses (``action:session_id``)."""
        query = update.callback_query
        if query is None:
            return

        if not self._is_authorized(update.effective_chat.id):
            await query.answer("Unauthorized.", show_alert=True)
            return

        await query.answer()  # Acknowledge to remove "loading" indicator

        action, _, session_id = (query.data or "").partition(":")
        if action not in ("approve", "reject") or not session_id:
            logger.warning("[TELEGRAM] Unknown callback data: %s", query.data)
            return

        logger.info(
            "[TELEGRAM] Inline %s for '%s' from user %s",
            action,
            session_id,
            query.from_user.id,
        )
        ok = await self.dispatch_decision(action, session_id)
        verdict = "APPROVED" if action == "approve" else "REJECTED"
        if not ok:
            verdict += " FAILED (see logs)"
        await query.edit_message_text(text=f"{query.message.text}\n\n-- {verdict} --")

    async def dispatch_decision(self, action: str, session_id: str) -> bool:
        """Invoke the callback for *action*; ``False`` if it raised."""
        callback = self._on_approve if action == "approve" else self._on_reject
        self.remove_pending_approval(session_id)
        if callback is None:
            return True
        try:
            await callback(session_id)
        except Exception:
            logger.exception("[TELEGRAM] %s callback failed for %s", action, session_id)
            return False
        return True

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def _is_authorized(self, user_id: int) -> bool:
        """Check whether *user_id* matches the configured chat ID."""
        authorized = str(user_id) == str(self._chat_id)
        if not authorized:
            logger.warning(
                "[TELEGRAM] Unauthorized access attempt from user_id=%s "
                "(expected chat_id=%s)",
                user_id,
                self._chat_id,
            )
        return authorized

    # ------------------------------------------------------------------
    # Pending approval management
    # ------------------------------------------------------------------

    def add_pending_approval(self, session_id: str, intent: str = "") -> None:
        self._pending_approvals[session_id] = {
            "intent": intent,
            "created_at": utc_now().isoformat(),
        }

    def remove_pending_approval(self, session_id: str) -> None:
        self._pending_approvals.pop(session_id, None)

    def get_pending_count(self) -> int:
        return len(self._pending_approvals)

    # ------------------------------------------------------------------
    # Error handler
    # ------------------------------------------------------------------

    @staticmethod
    async def _error_handler(update: object, context: Any) -> None:
        """Log update errors without crashing the polling loop."""
        logger.error(
            "[TELEGRAM] Update %s caused error: %s",
            update,
            context.error,
            exc_info=context.error,
        )


__all__ = [
    "TelegramNotifier",
    "TelegramBot",
    "format_plan_preview",
    "format_session_report",
]
