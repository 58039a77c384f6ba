import logging

from .interfaces import ConversationIndexInterface
from .errors import ConversationNotFoundError
from .identity import normalize


class ConversationResolver:
    """
    Finds the conversation between two users through their summary indexes.

    The counterparty's index is searched first; the caller's own index is the
    fallback, so a conversation the counterparty has hidden is still reused.
    """

    def __init__(self, index: ConversationIndexInterface, logger: logging.Logger | None = None):
        self._index = index
        self._logger = logger or logging.getLogger(__name__)

    async def resolve(self, self_key: str, counterparty_email: str) -> str:
        """
        :raises ConversationNotFoundError: no conversation yet, start the creation path
        :raises UserNotFoundError: the counterparty is not registered
        """
        self_key = normalize(self_key)
        counterparty_key = normalize(counterparty_email)

        for summary in await self._index.get_summaries(counterparty_key):
            if summary.other_user_key == self_key:
                return summary.id

        for summary in await self._index.get_summaries(self_key):
            if summary.other_user_key == counterparty_key:
                self._logger.debug("Conversation %s found only in the index of %s", summary.id, self_key)
                return summary.id

        raise ConversationNotFoundError(
            None,
            f"No conversation between {self_key} and {counterparty_key}"
        )
