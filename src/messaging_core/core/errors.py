class MessagingError(Exception):
    """Base class for every error raised by the messaging core."""


class NotFoundError(MessagingError):
    """
    A user, conversation or message log is absent.
    Often a "not yet created" signal rather than a failure.
    """


class UserNotFoundError(NotFoundError):
    def __init__(self, identity_key: str):
        super().__init__(f"User {identity_key} not found")
        self.identity_key = identity_key


class ConversationNotFoundError(NotFoundError):
    def __init__(self, conversation_id: str | None, reason: str | None = None):
        super().__init__(reason or f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class StoreError(MessagingError):
    """Transport or backing-store failure."""


class WriteConflictError(StoreError):
    """A conditional write lost against a concurrent writer."""


class MalformedRecordError(MessagingError):
    def __init__(self, message: str, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


class UploadError(MessagingError):
    """Object storage collaborator failure."""


class NotParticipantError(MessagingError):
    def __init__(self, identity_key: str, conversation_id: str):
        super().__init__(f"User {identity_key} is not a participant of {conversation_id}")
        self.identity_key = identity_key
        self.conversation_id = conversation_id
