from typing import Any, Callable
import logging

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .database import User, Conversation, Message
from .interfaces import UserInterface, MessageStoreInterface, ConversationIndexInterface
from .dto import UserDTO, MessageDTO, ConversationSummaryDTO
from .db_manager import DatabaseManager
from .errors import (
    StoreError, WriteConflictError, UserNotFoundError,
    ConversationNotFoundError, MalformedRecordError
)
from .identity import normalize
from .records import (
    encode_message, decode_message, encode_summary, encode_latest_message, decode_summary, parse_date
)

# Takes the raw entry list, returns the list to write back or None to leave it untouched.
EntriesMutation = Callable[[list[dict[str, Any]]], list[dict[str, Any]] | None]


class UserGateway(UserInterface):
    __slots__ = ("_db_manager", "_logger")

    def __init__(self, db_manager: DatabaseManager, logger: logging.Logger | None = None):
        self._db_manager = db_manager
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _to_dto(user: User) -> UserDTO:
        return UserDTO(
            identity_key=user.identity_key,
            email=user.email,
            display_name=user.display_name
        )

    async def register_user(self, email: str, display_name: str) -> UserDTO:
        identity_key = normalize(email)
        try:
            async with self._db_manager.session() as session:
                stmt = insert(User).values(
                    identity_key=identity_key,
                    email=email,
                    display_name=display_name,
                    conversations=[],
                    index_version=0
                )
                await session.execute(stmt)
        except IntegrityError as e:
            self._logger.warning("User %s is already registered", identity_key)
            raise WriteConflictError(f"User {identity_key} already exists") from e
        except SQLAlchemyError as e:
            self._logger.error("Error registering user %s in database: %s", identity_key, e)
            raise StoreError(f"Failed to register user {identity_key}") from e

        return UserDTO(identity_key=identity_key, email=email, display_name=display_name)

    async def user_exists(self, email: str) -> bool:
        try:
            async with self._db_manager.session() as session:
                stmt = select(User.identity_key).where(User.identity_key == normalize(email))
                return await session.scalar(stmt) is not None
        except SQLAlchemyError as e:
            self._logger.error("Error checking user %s in database: %s", email, e)
            raise StoreError(f"Failed to look up user {email}") from e

    async def get_user(self, identity_key: str) -> UserDTO | None:
        try:
            async with self._db_manager.session() as session:
                stmt = select(User).where(User.identity_key == normalize(identity_key))
                result = await session.execute(stmt)
                user = result.scalars().first()
                if user:
                    return self._to_dto(user)
                else:
                    return None
        except SQLAlchemyError as e:
            self._logger.error("Error getting user %s in database: %s", identity_key, e)
            raise StoreError(f"Failed to get user {identity_key}") from e

    async def get_all_users(self) -> list[UserDTO]:
        try:
            async with self._db_manager.session() as session:
                result = await session.execute(select(User).order_by(User.created_at, User.identity_key))
                return [self._to_dto(user) for user in result.scalars().all()]
        except SQLAlchemyError as e:
            self._logger.error("Error getting users in database: %s", e)
            raise StoreError("Failed to list users") from e

    async def update_display_name(self, identity_key: str, display_name: str) -> UserDTO:
        identity_key = normalize(identity_key)
        try:
            async with self._db_manager.session() as session:
                stmt = update(User).where(
                    User.identity_key == identity_key
                ).values(display_name=display_name).execution_options(synchronize_session=False)
                result = await session.execute(stmt)
                updated = result.rowcount
        except SQLAlchemyError as e:
            self._logger.error("Error renaming user %s in database: %s", identity_key, e)
            raise StoreError(f"Failed to rename user {identity_key}") from e

        if not updated:
            raise UserNotFoundError(identity_key)

        user = await self.get_user(identity_key)
        if user is None:
            raise UserNotFoundError(identity_key)
        return user


class MessageGateway(MessageStoreInterface):
    """
    Append-only message log.

    Every conversation owns a counter row; appending increments the counter
    and inserts the message in one transaction, so concurrent appends get
    distinct, gap-free sequence numbers and none of them is lost.
    """
    __slots__ = ("_db_manager", "_logger")

    def __init__(self, db_manager: DatabaseManager, logger: logging.Logger | None = None):
        self._db_manager = db_manager
        self._logger = logger or logging.getLogger(__name__)

    async def _ensure_conversation(self, conversation_id: str) -> None:
        try:
            async with self._db_manager.session() as session:
                stmt = select(Conversation.id).where(Conversation.id == conversation_id)
                if await session.scalar(stmt) is None:
                    session.add(Conversation(id=conversation_id, last_seq=0))
                    self._logger.info("Creating message log for %s", conversation_id)
        except IntegrityError:
            # created by a concurrent writer between the check and the insert
            self._logger.debug("Message log for %s already created", conversation_id)
        except SQLAlchemyError as e:
            self._logger.error("Error creating message log %s in database: %s", conversation_id, e)
            raise ConversationNotFoundError(
                conversation_id,
                f"Message log for {conversation_id} could not be created"
            ) from e

    async def append_message(self, conversation_id: str, message: MessageDTO) -> int:
        await self._ensure_conversation(conversation_id)
        record = encode_message(message)

        try:
            async with self._db_manager.session() as session:
                existing = await session.scalar(
                    select(Message.seq).where(
                        Message.conversation_id == conversation_id,
                        Message.message_id == message.id
                    )
                )
                if existing is not None:
                    self._logger.debug("Message %s already in %s at seq %d", message.id, conversation_id, existing)
                    return existing

                await session.execute(
                    update(Conversation).where(
                        Conversation.id == conversation_id
                    ).values(last_seq=Conversation.last_seq + 1).execution_options(synchronize_session=False)
                )
                seq = await session.scalar(
                    select(Conversation.last_seq).where(Conversation.id == conversation_id)
                )
                session.add(Message(
                    conversation_id=conversation_id,
                    seq=seq,
                    message_id=message.id,
                    record=record
                ))
            return seq

        except IntegrityError as e:
            self._logger.error("Conflicting append of %s to %s: %s", message.id, conversation_id, e)
            raise WriteConflictError(f"Concurrent append of {message.id} to {conversation_id}") from e
        except SQLAlchemyError as e:
            self._logger.error("Error appending message to %s in database: %s", conversation_id, e)
            raise StoreError(f"Failed to append message to {conversation_id}") from e

    async def get_message(self, conversation_id: str, message_id: str) -> MessageDTO | None:
        try:
            async with self._db_manager.session() as session:
                row = (await session.execute(
                    select(Message.seq, Message.record).where(
                        Message.conversation_id == conversation_id,
                        Message.message_id == message_id
                    )
                )).first()
        except SQLAlchemyError as e:
            self._logger.error("Error getting message %s of %s in database: %s", message_id, conversation_id, e)
            raise StoreError(f"Failed to get message {message_id} of {conversation_id}") from e

        if row is None:
            return None
        try:
            return decode_message(row.record, row.seq)
        except MalformedRecordError as e:
            self._logger.warning("Message %s in %s is malformed: %s", message_id, conversation_id, e)
            return None

    async def list_messages(self, conversation_id: str, after_seq: int = 0) -> list[MessageDTO]:
        try:
            async with self._db_manager.session() as session:
                found = await session.scalar(
                    select(Conversation.id).where(Conversation.id == conversation_id)
                )
                rows = []
                if found is not None:
                    stmt = select(Message.seq, Message.record).where(
                        Message.conversation_id == conversation_id,
                        Message.seq > after_seq
                    ).order_by(Message.seq)
                    rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            self._logger.error("Error listing messages of %s in database: %s", conversation_id, e)
            raise StoreError(f"Failed to list messages of {conversation_id}") from e

        if found is None:
            raise ConversationNotFoundError(conversation_id)

        messages = []
        for seq, record in rows:
            try:
                messages.append(decode_message(record, seq))
            except MalformedRecordError as e:
                self._logger.warning(
                    "Skipping malformed message %s (seq %d) in %s: %s",
                    e.record_id, seq, conversation_id, e
                )
        return messages


class ConversationIndexGateway(ConversationIndexInterface):
    """
    Per-user conversation summaries, stored as one list on the user record.

    Each mutation reads the list together with its version token and writes
    it back only if the token is unchanged. A lost race re-reads and
    re-applies the mutation, up to ``max_write_attempts`` times.
    """
    __slots__ = ("_db_manager", "_logger", "_max_write_attempts")

    def __init__(
            self,
            db_manager: DatabaseManager,
            logger: logging.Logger | None = None,
            max_write_attempts: int = 5
    ):
        self._db_manager = db_manager
        self._logger = logger or logging.getLogger(__name__)
        self._max_write_attempts = max_write_attempts

    async def _read_entries(self, user_key: str) -> tuple[list[dict[str, Any]], int]:
        try:
            async with self._db_manager.session() as session:
                stmt = select(User.conversations, User.index_version).where(User.identity_key == user_key)
                row = (await session.execute(stmt)).first()
        except SQLAlchemyError as e:
            self._logger.error("Error reading conversation index of %s: %s", user_key, e)
            raise StoreError(f"Failed to read conversation index of {user_key}") from e

        if row is None:
            raise UserNotFoundError(user_key)
        return list(row.conversations or []), row.index_version

    async def _write_entries(self, user_key: str, entries: list[dict[str, Any]], expected_version: int) -> bool:
        try:
            async with self._db_manager.session() as session:
                stmt = update(User).where(
                    User.identity_key == user_key,
                    User.index_version == expected_version
                ).values(
                    conversations=entries,
                    index_version=expected_version + 1
                ).execution_options(synchronize_session=False)
                result = await session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            self._logger.error("Error writing conversation index of %s: %s", user_key, e)
            raise StoreError(f"Failed to write conversation index of {user_key}") from e

    async def _mutate(self, user_key: str, mutation: EntriesMutation) -> bool:
        for attempt in range(1, self._max_write_attempts + 1):
            entries, version = await self._read_entries(user_key)
            updated = mutation(entries)
            if updated is None:
                return False
            if await self._write_entries(user_key, updated, version):
                return True
            self._logger.debug(
                "Conversation index of %s changed since version %d, retrying (%d/%d)",
                user_key, version, attempt, self._max_write_attempts
            )

        self._logger.error("Giving up on conversation index of %s after %d attempts", user_key, self._max_write_attempts)
        raise WriteConflictError(f"Conversation index of {user_key} kept changing")

    async def get_summaries(self, user_key: str) -> list[ConversationSummaryDTO]:
        user_key = normalize(user_key)
        entries, _ = await self._read_entries(user_key)

        summaries = []
        for entry in entries:
            try:
                summaries.append(decode_summary(entry))
            except MalformedRecordError as e:
                self._logger.warning("Skipping malformed summary %s of %s: %s", e.record_id, user_key, e)
        return summaries

    async def upsert_summary(self, user_key: str, summary: ConversationSummaryDTO) -> None:
        user_key = normalize(user_key)
        new_entry = encode_summary(summary)
        latest = encode_latest_message(summary.latest_message)

        def mutation(entries: list[dict[str, Any]]) -> list[dict[str, Any]] | None:
            for index, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("id") == summary.id:
                    if self._is_stale(entry.get("latest_message"), latest):
                        return None
                    entries[index] = {**entry, "latest_message": latest}
                    return entries
            entries.append(new_entry)
            return entries

        if not await self._mutate(user_key, mutation):
            self._logger.debug("Summary %s of %s already holds a newer message", summary.id, user_key)

    @staticmethod
    def _is_stale(stored: Any, incoming: dict[str, Any]) -> bool:
        """
        True when the stored snapshot is newer than the incoming one, or is
        the same snapshot (a retried send must not reset is_read).
        """
        if not isinstance(stored, dict) or not isinstance(stored.get("date"), str):
            return False
        try:
            stored_date = parse_date(stored["date"])
        except MalformedRecordError:
            return False
        incoming_date = parse_date(incoming["date"])
        if stored_date > incoming_date:
            return True
        return stored_date == incoming_date and stored.get("message") == incoming["message"]

    async def remove_summary(self, user_key: str, conversation_id: str) -> bool:
        user_key = normalize(user_key)

        def mutation(entries: list[dict[str, Any]]) -> list[dict[str, Any]] | None:
            kept = [e for e in entries if not (isinstance(e, dict) and e.get("id") == conversation_id)]
            if len(kept) == len(entries):
                return None
            return kept

        removed = await self._mutate(user_key, mutation)
        if not removed:
            self._logger.debug("No summary %s in index of %s, nothing to remove", conversation_id, user_key)
        return removed

    async def mark_read(self, user_key: str, conversation_id: str) -> None:
        user_key = normalize(user_key)

        def mutation(entries: list[dict[str, Any]]) -> list[dict[str, Any]] | None:
            for index, entry in enumerate(entries):
                if isinstance(entry, dict) and entry.get("id") == conversation_id:
                    latest = entry.get("latest_message")
                    if not isinstance(latest, dict) or latest.get("is_read"):
                        return None
                    entries[index] = {**entry, "latest_message": {**latest, "is_read": True}}
                    return entries
            raise ConversationNotFoundError(conversation_id)

        await self._mutate(user_key, mutation)
