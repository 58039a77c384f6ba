from fastapi import HTTPException, status

from messaging_core.core.errors import (
    MessagingError, NotFoundError, NotParticipantError, WriteConflictError, StoreError,
    UploadError, MalformedRecordError
)


def to_http_exception(error: MessagingError) -> HTTPException:
    if isinstance(error, NotParticipantError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, WriteConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, StoreError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(error, UploadError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(error, MalformedRecordError):
        code = 422
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))
