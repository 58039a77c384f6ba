from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Annotated, Literal, Union, get_args

UnsupportedKind = Literal["attributed_text", "emoji", "audio", "contact", "linkPreview", "custom"]
UNSUPPORTED_KINDS = get_args(UnsupportedKind)


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class PhotoContent(BaseModel):
    kind: Literal["photo"] = "photo"
    url: str


class VideoContent(BaseModel):
    kind: Literal["video"] = "video"
    url: str


class LocationContent(BaseModel):
    kind: Literal["location"] = "location"
    longitude: float
    latitude: float


class UnsupportedContent(BaseModel):
    """ Accepted tag without a materialized payload """
    kind: UnsupportedKind


MessageContent = Annotated[
    Union[TextContent, PhotoContent, VideoContent, LocationContent, UnsupportedContent],
    Field(discriminator="kind")
]


class SessionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity_key: str
    display_name: str


class UserDTO(BaseModel):
    identity_key: str
    email: str
    display_name: str


class MessageDTO(BaseModel):
    id: str
    sender_key: str
    sender_name: str
    sent_at: datetime
    content: MessageContent
    is_read: bool = False
    seq: int | None = None  # assigned by the message log on append


class LatestMessageDTO(BaseModel):
    date: datetime
    text: str
    is_read: bool = False


class ConversationSummaryDTO(BaseModel):
    id: str
    other_user_key: str
    name: str
    latest_message: LatestMessageDTO
