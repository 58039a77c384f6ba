from datetime import datetime
import uuid

# Characters the storage path cannot hold, and their replacement.
_UNSAFE_CHARACTERS = (".", "@")
_SEPARATOR = "-"


def normalize(raw_identifier: str) -> str:
    """
    Map a user-facing email address to a storage-safe identity key.
    Pure and deterministic; already-normalized keys map to themselves.
    Distinct real addresses are assumed not to collide after normalization.
    :param raw_identifier: email address or identity key
    :return: identity key
    """
    key = raw_identifier
    for character in _UNSAFE_CHARACTERS:
        key = key.replace(character, _SEPARATOR)
    return key


def generate_message_id(sender_key: str, counterparty_key: str, sent_at: datetime) -> str:
    """
    Readable message id: sender, counterparty and timestamp, plus a random
    suffix so two sends within the same tick never collide.
    """
    return "_".join((
        normalize(sender_key),
        normalize(counterparty_key),
        sent_at.strftime("%Y%m%d%H%M%S%f"),
        uuid.uuid4().hex[:8],
    ))


def conversation_id_for(message_id: str) -> str:
    return f"conversation_{message_id}"


def profile_picture_file_name(email: str) -> str:
    return f"{normalize(email)}_profile_picture.png"
