from abc import ABC, abstractmethod

from .dto import UserDTO, MessageDTO, ConversationSummaryDTO


class UserInterface(ABC):
    @abstractmethod
    async def register_user(
            self,
            email: str,
            display_name: str
    ) -> UserDTO:
        """
        Creates the per-user record with an empty conversation index.
        :param email:
        :param display_name:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def user_exists(
            self,
            email: str
    ) -> bool:
        """
        Checks whether a user record exists for an email or identity key.
        :param email:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_user(
            self,
            identity_key: str
    ) -> UserDTO | None:
        """
        Get user by identity key
        :param identity_key:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_all_users(self) -> list[UserDTO]:
        """
        Get every registered user
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def update_display_name(
            self,
            identity_key: str,
            display_name: str
    ) -> UserDTO:
        """
        Renames a user. Other users' summaries keep the old name.
        :param identity_key:
        :param display_name:
        :return:
        """
        raise NotImplementedError()


class MessageStoreInterface(ABC):
    @abstractmethod
    async def append_message(
            self,
            conversation_id: str,
            message: MessageDTO
    ) -> int:
        """
        Appends a message to the conversation log, creating the log if needed.
        Re-appending an id already in the log is a no-op.
        :param conversation_id:
        :param message:
        :return: sequence number of the message in the log
        """
        raise NotImplementedError()

    @abstractmethod
    async def get_message(
            self,
            conversation_id: str,
            message_id: str
    ) -> MessageDTO | None:
        """
        Returns a logged message by id, None if it is absent or malformed.
        :param conversation_id:
        :param message_id:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def list_messages(
            self,
            conversation_id: str,
            after_seq: int = 0
    ) -> list[MessageDTO]:
        """
        Lists messages in sequence order, skipping malformed records.
        :param conversation_id:
        :param after_seq: only return messages with a greater sequence number
        :return:
        """
        raise NotImplementedError()


class ConversationIndexInterface(ABC):
    @abstractmethod
    async def get_summaries(
            self,
            user_key: str
    ) -> list[ConversationSummaryDTO]:
        """
        Gets the user's conversation summaries in storage order.
        :param user_key:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def upsert_summary(
            self,
            user_key: str,
            summary: ConversationSummaryDTO
    ) -> None:
        """
        Replaces the latest-message snapshot of a matching entry,
        or appends the summary when no entry matches.
        :param user_key:
        :param summary:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def remove_summary(
            self,
            user_key: str,
            conversation_id: str
    ) -> bool:
        """
        Removes the entry for a conversation. Missing entry is a no-op.
        :param user_key:
        :param conversation_id:
        :return: whether an entry was removed
        """
        raise NotImplementedError()

    @abstractmethod
    async def mark_read(
            self,
            user_key: str,
            conversation_id: str
    ) -> None:
        """
        Sets the read flag of the entry's latest-message snapshot.
        :param user_key:
        :param conversation_id:
        :return:
        """
        raise NotImplementedError()
