"""
Entry point: plan a campaign and approve it from Telegram.

Usage::

    python run.py "Launch a productivity app for remote teams"
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main(intent: str) -> None:
    from src.models import ApprovalData, SessionStatus
    from src.orchestrator import build_orchestrator
    from src.ui.telegram_bot import TelegramBot, TelegramNotifier

    bot_token = os.environ["TELEGRAM_BOT_TOKEN"]
    chat_id = os.environ["TELEGRAM_CHAT_ID"]

    orchestrator = await build_orchestrator()

    # Shared event + decision container for the approval flow
    decision_event = asyncio.Event()
    decision: dict = {}  # {"action": "approve"|"reject", "session_id": str}

    async def on_approve(session_id: str) -> None:
        decision["action"] = "approve"
        decision["session_id"] = session_id
        decision_event.set()

    async def on_reject(session_id: str) -> None:
        decision["action"] = "reject"
        decision["session_id"] = session_id
        decision_event.set()

    notifier = TelegramNotifier(bot_token, chat_id)
    bot = TelegramBot(
        bot_token,
        chat_id,
        on_approve=on_approve,
        on_reject=on_reject,
        session_lookup=orchestrator.get_session,
    )

    # Start bot polling so it can receive button presses
    await bot.start()

    try:
        session_id = await orchestrator.start(intent)
        session = await orchestrator.get_session(session_id)

        if session is None or session.status is not SessionStatus.AWAITING_APPROVAL:
            logger.error("Planning failed for session %s", session_id)
            if session is not None:
                await notifier.send_session_report(session)
            return

        # ---- Send plan preview -----------------------------------------------
        bot.add_pending_approval(session_id, intent)
        await notifier.send_plan_preview(session_id, intent, session.execution_plan)
        logger.info("Plan sent to Telegram. Waiting for approval...")

        # ---- Wait for human decision -----------------------------------------
        await decision_event.wait()

        approved = decision.get("action") == "approve"
        logger.info("Plan %s by reviewer", "APPROVED" if approved else "REJECTED")
        if approved:
            await notifier.send("Plan approved. Running campaign nodes...")

        try:
            await orchestrator.resume(session_id, ApprovalData(approved=approved))
        except Exception:
            logger.exception("Resume failed")
            await notifier.send("Resume FAILED. Check logs.")

        session = await orchestrator.get_session(session_id)
        if session is not None:
            logger.info("Session %s finished: %s", session_id, session.status.value)
            await notifier.send_session_report(session)

    finally:
        await bot.stop()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print('Usage: python run.py "<campaign intent>"')
        sys.exit(2)
    try:
        asyncio.run(main(" ".join(sys.argv[1:])))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
