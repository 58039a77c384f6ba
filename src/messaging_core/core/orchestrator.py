from datetime import datetime, timezone
import logging

from .interfaces import MessageStoreInterface, ConversationIndexInterface
from .resolver import ConversationResolver
from .dto import SessionContext, MessageDTO, MessageContent, ConversationSummaryDTO
from .errors import ConversationNotFoundError, NotParticipantError
from .identity import normalize, generate_message_id, conversation_id_for
from .records import latest_message_for


def new_message(
        session: SessionContext,
        counterparty_email: str,
        content: MessageContent,
        sent_at: datetime | None = None,
        message_id: str | None = None
) -> MessageDTO:
    """
    Builds an outgoing message from the session's user.
    Pass the id of an earlier attempt to retry a send idempotently.
    """
    sent_at = sent_at or datetime.now(timezone.utc)
    return MessageDTO(
        id=message_id or generate_message_id(session.identity_key, counterparty_email, sent_at),
        sender_key=session.identity_key,
        sender_name=session.display_name,
        sent_at=sent_at,
        content=content
    )


class SyncOrchestrator:
    """
    Write and read paths over the message log and the conversation index.

    Create and send are sequences of independent writes with no rollback:
    a failure midway surfaces to the caller and leaves the writes that
    already succeeded in place. Summaries converge once every step of a
    send has completed. Retrying with the same message id is safe. The log
    ignores ids it already holds and a summary never moves back to an
    older message.
    """

    def __init__(
            self,
            message_store: MessageStoreInterface,
            index: ConversationIndexInterface,
            resolver: ConversationResolver | None = None,
            logger: logging.Logger | None = None
    ):
        self._messages = message_store
        self._index = index
        self._resolver = resolver or ConversationResolver(index, logger)
        self._logger = logger or logging.getLogger(__name__)

    def _summary_pair(
            self,
            session: SessionContext,
            conversation_id: str,
            counterparty_key: str,
            counterparty_name: str,
            message: MessageDTO
    ) -> tuple[ConversationSummaryDTO, ConversationSummaryDTO]:
        latest = latest_message_for(message)
        own = ConversationSummaryDTO(
            id=conversation_id,
            other_user_key=counterparty_key,
            name=counterparty_name,
            latest_message=latest
        )
        theirs = ConversationSummaryDTO(
            id=conversation_id,
            other_user_key=normalize(session.identity_key),
            name=session.display_name,
            latest_message=latest
        )
        return own, theirs

    async def create_conversation(
            self,
            session: SessionContext,
            counterparty_email: str,
            counterparty_name: str,
            first_message: MessageDTO
    ) -> str:
        """
        Starts a conversation with its first message.
        Writes the sender's summary, then the counterparty's, then the message.
        :return: id of the new conversation
        """
        conversation_id = conversation_id_for(first_message.id)
        counterparty_key = normalize(counterparty_email)
        own, theirs = self._summary_pair(session, conversation_id, counterparty_key, counterparty_name, first_message)

        await self._index.upsert_summary(session.identity_key, own)
        await self._index.upsert_summary(counterparty_key, theirs)
        await self._messages.append_message(conversation_id, first_message)

        self._logger.info("Conversation %s created between %s and %s",
                          conversation_id, session.identity_key, counterparty_key)
        return conversation_id

    async def send_message(
            self,
            session: SessionContext,
            conversation_id: str,
            counterparty_email: str,
            counterparty_name: str,
            message: MessageDTO
    ) -> int:
        """
        Appends a message, then refreshes the sender's and the counterparty's
        summaries. A summary the counterparty had removed is added back.
        :return: sequence number of the message
        """
        counterparty_key = normalize(counterparty_email)
        logged = await self._messages.get_message(conversation_id, message.id)
        if logged is not None:
            # retry; keep the snapshot of the first attempt
            message = logged
        own, theirs = self._summary_pair(session, conversation_id, counterparty_key, counterparty_name, message)

        seq = await self._messages.append_message(conversation_id, message)
        await self._index.upsert_summary(session.identity_key, own)
        await self._index.upsert_summary(counterparty_key, theirs)

        self._logger.debug("Message %s appended to %s at seq %d", message.id, conversation_id, seq)
        return seq

    async def list_conversations(self, session: SessionContext) -> list[ConversationSummaryDTO]:
        # storage order; callers wanting recency sort by latest_message.date
        return await self._index.get_summaries(session.identity_key)

    async def list_messages(self, conversation_id: str, after_seq: int = 0) -> list[MessageDTO]:
        try:
            return await self._messages.list_messages(conversation_id, after_seq)
        except ConversationNotFoundError:
            return []

    async def find_existing_conversation(self, session: SessionContext, counterparty_email: str) -> str:
        return await self._resolver.resolve(session.identity_key, counterparty_email)

    async def delete_conversation(self, session: SessionContext, conversation_id: str) -> None:
        """
        Hides the conversation for the caller only. The counterparty's summary
        and the message log are left untouched.
        """
        removed = await self._index.remove_summary(session.identity_key, conversation_id)
        if removed:
            self._logger.info("Conversation %s removed from the index of %s", conversation_id, session.identity_key)

    async def mark_conversation_read(self, session: SessionContext, conversation_id: str) -> None:
        await self._index.mark_read(session.identity_key, conversation_id)

    async def ensure_participant(
            self,
            session: SessionContext,
            conversation_id: str,
            counterparty_email: str | None = None
    ) -> None:
        """
        Checks that the caller takes part in the conversation, and with the
        given counterparty when one is passed. A conversation the caller has
        hidden still counts when the counterparty's index lists the pair.
        :raises NotParticipantError:
        """
        self_key = normalize(session.identity_key)
        counterparty_key = normalize(counterparty_email) if counterparty_email is not None else None

        for summary in await self._index.get_summaries(self_key):
            if summary.id == conversation_id:
                if counterparty_key is None or summary.other_user_key == counterparty_key:
                    return
                raise NotParticipantError(self_key, conversation_id)

        if counterparty_key is not None:
            for summary in await self._index.get_summaries(counterparty_key):
                if summary.id == conversation_id and summary.other_user_key == self_key:
                    return

        self._logger.warning("User %s is not a participant of %s", self_key, conversation_id)
        raise NotParticipantError(self_key, conversation_id)
