from .dto import (
    SessionContext, UserDTO, MessageDTO, ConversationSummaryDTO, LatestMessageDTO,
    TextContent, PhotoContent, VideoContent, LocationContent, UnsupportedContent, MessageContent
)
from .errors import (
    MessagingError, NotFoundError, UserNotFoundError, ConversationNotFoundError,
    StoreError, WriteConflictError, MalformedRecordError, UploadError
)
from .identity import normalize
from .orchestrator import SyncOrchestrator, new_message
from .resolver import ConversationResolver
