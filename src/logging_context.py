"""Conversation ID logging context for tracing messages across modules.

Provides a conversation-aware logger that attaches the customer's
conversation identity to every log record, making it easy to follow a
single customer's booking through engine, gateways and store.

Usage:
    from src.logging_context import get_conversation_logger, set_conversation_id

    set_conversation_id("5491122334455@c.us")
    logger = get_conversation_logger(__name__)
    logger.info("Processing message")  # → [5491122334455@c.us] Processing message
"""

import logging
from contextvars import ContextVar

_conversation_id: ContextVar[str] = ContextVar("conversation_id", default="-")


def set_conversation_id(conversation_id: str) -> None:
    """Set the conversation identity for the current async context."""
    _conversation_id.set(conversation_id)


class ConversationIdFilter(logging.Filter):
    """Injects conversation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "conversation_id"):
            record.conversation_id = _conversation_id.get()  # type: ignore[attr-defined]
        return True


def get_conversation_logger(name: str) -> logging.Logger:
    """Return a logger with the ConversationIdFilter attached.

    The filter adds ``conversation_id`` to each record so formatters can
    include ``%(conversation_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, ConversationIdFilter) for f in logger.filters):
        logger.addFilter(ConversationIdFilter())
    return logger
