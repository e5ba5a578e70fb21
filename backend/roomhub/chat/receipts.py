"""Reaction tallies and read receipts.

Both operations annotate a message already in the log, in place. Reactions
are counted, not deduplicated, unless ``dedupe_reactions`` is enabled, in
which case each reader contributes at most one count per emoji. Read-by
lists append every receipt, repeats included.
"""
import logging
from typing import Dict, List, Optional, Set, Tuple

from .message_log import MessageLog

logger = logging.getLogger(__name__)


class ReceiptRelay:
    """Applies reactions and read receipts to messages in a MessageLog."""

    def __init__(self, log: MessageLog, dedupe_reactions: bool = False) -> None:
        self._log = log
        self.dedupe_reactions = dedupe_reactions
        # message id -> emoji -> reactor names (used only when deduplicating)
        self._reactors: Dict[str, Dict[str, Set[str]]] = {}

    def react(self, message_id: str, reactor_name: str, emoji: str) -> Optional[Dict[str, int]]:
        """Add one ``emoji`` to the message's tally.

        Returns:
            A copy of the full updated tally, or None if the message is
            unknown (or, with dedup enabled, the reactor already used this
            emoji on this message).
        """
        message = self._log.find(message_id)
        if message is None:
            logger.debug(f"[Receipts] Reaction for unknown message {message_id}")
            return None

        if self.dedupe_reactions:
            reactors = self._reactors.setdefault(message_id, {}).setdefault(emoji, set())
            if reactor_name in reactors:
                return None
            reactors.add(reactor_name)

        message.reactions[emoji] = message.reactions.get(emoji, 0) + 1
        return dict(message.reactions)

    def mark_read(self, message_id: str, reader_name: str) -> Optional[Tuple[str, List[str]]]:
        """Record that ``reader_name`` has seen the message.

        Returns:
            (author name, copy of the updated read-by list), or None if the
            message is unknown.
        """
        message = self._log.find(message_id)
        if message is None:
            logger.debug(f"[Receipts] Read receipt for unknown message {message_id}")
            return None

        message.readBy.append(reader_name)
        return message.author, list(message.readBy)
