"""
Telegram notifier for delivering consensus alerts.

An alert is sent once per actionable analysis. Delivery uses the
python-telegram-bot library; every failure is logged and reported as
False so the analysis path never breaks on a notification problem.
"""

import asyncio
import logging

from telegram import Bot
from telegram.error import NetworkError, TelegramError, TimedOut

from wicketwise.config import Config
from wicketwise.models import Analysis, Match

# Configure module logger
logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 200


def format_consensus_alert(match: Match, analysis: Analysis) -> str:
    """
    Format an actionable analysis into a short alert message.

    The first edge is the headline. The message contains the consensus
    level, the match name, the market label (or id when the line is no
    longer on the match), the edge type and the observation.

    Args:
        match: Match the analysis belongs to
        analysis: Actionable analysis

    Returns:
        Message text
    """
    lines = [f"CONSENSUS ({analysis.consensus_level}/{analysis.panel_size})", f"Match: {match.name}"]

    if analysis.edges:
        edge = analysis.edges[0]
        line = match.find_line(edge.market_id)
        market = line.label if line else edge.market_id
        lines.append(f"Edge: {edge.edge_type.value} on {market} ({edge.confidence:.0f}%)")

        note = edge.observation
        if len(note) > MAX_NOTE_LENGTH:
            note = note[:MAX_NOTE_LENGTH - 3] + "..."
        lines.append(f"Note: {note}")

        if len(analysis.edges) > 1:
            lines.append(f"(+{len(analysis.edges) - 1} more edge(s))")

    return "\n".join(lines)


def send_telegram_message(message: str) -> bool:
    """
    Send a message to Telegram safely with error handling.

    Args:
        message: Message text to send

    Returns:
        True if message sent successfully, False otherwise
    """
    if not Config.TELEGRAM_BOT_TOKEN or not Config.TELEGRAM_CHAT_ID:
        logger.debug("Telegram not configured (missing token or chat_id)")
        return False

    if not message or not message.strip():
        logger.warning("Empty message, not sending")
        return False

    try:
        chat_id = int(Config.TELEGRAM_CHAT_ID)
    except ValueError:
        chat_id = Config.TELEGRAM_CHAT_ID

    try:
        bot = Bot(token=Config.TELEGRAM_BOT_TOKEN)
        logger.debug(f"Sending alert to Telegram chat {chat_id}")
        asyncio.run(bot.send_message(
            chat_id=chat_id,
            text=message,
            disable_web_page_preview=True,
        ))
        logger.info("Telegram alert sent")
        return True

    except TimedOut:
        logger.error("Telegram API request timed out")
        return False

    except NetworkError as e:
        logger.error(f"Network error sending Telegram message: {e}")
        return False

    except TelegramError as e:
        logger.error(f"Telegram API error: {e}")
        return False


def send_consensus_alert(match: Match, analysis: Analysis) -> bool:
    """
    Alert dispatcher for the consensus engine.

    Returns:
        True if the alert was delivered, False otherwise
    """
    if not analysis.is_actionable:
        logger.debug(f"Analysis for {match.id} is not actionable, no alert")
        return False
    return send_telegram_message(format_consensus_alert(match, analysis))
