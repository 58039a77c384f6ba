from pydantic import BaseModel, constr
from datetime import datetime

from messaging_core.core.dto import MessageContent


class RegisterRequest(BaseModel):
    email: constr(min_length=3, max_length=320)
    display_name: constr(min_length=1, max_length=100)


class RegisterResponse(BaseModel):
    identity_key: str
    display_name: str
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    identity_key: str
    email: str
    display_name: str


class RenameRequest(BaseModel):
    display_name: constr(min_length=1, max_length=100)


class SendMessageRequest(BaseModel):
    counterparty_email: constr(min_length=1)
    counterparty_name: str
    content: MessageContent
    # id of a previous attempt, to retry without duplicating the message
    message_id: str | None = None
    sent_at: datetime | None = None


class StartConversationResponse(BaseModel):
    conversation_id: str
    message_id: str
    created: bool


class SendMessageResponse(BaseModel):
    message_id: str
    seq: int


class FindConversationResponse(BaseModel):
    conversation_id: str


class UploadRequest(BaseModel):
    file_name: constr(min_length=1, max_length=255)
    data: str  # base64


class UploadResponse(BaseModel):
    url: str
