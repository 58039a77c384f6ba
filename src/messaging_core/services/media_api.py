from fastapi import APIRouter, HTTPException, status, Depends
from dishka.integrations.fastapi import inject
from dishka import FromDishka
import binascii
import base64
import logging

from messaging_core.core.errors import UploadError
from messaging_core.core.storage import MediaStorage
from .api_models import UploadRequest, UploadResponse
from .auth_api import AuthAPI
from .http_errors import to_http_exception


class MediaAPI:
    """
    Uploads for photo and video messages. The returned URL is what a
    photo or video message carries as its content.
    """

    def __init__(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ):
        self.logger = logger
        self.auth_api = auth_api
        self._media_router = APIRouter(prefix="/media", tags=["Media"])
        self._register_endpoints()

    def get_router(self) -> APIRouter:
        return self._media_router

    @staticmethod
    def _decode(upload: UploadRequest) -> bytes:
        try:
            return base64.b64decode(upload.data, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Data is not valid base64"
            )

    def _register_endpoints(self):
        @self._media_router.post("/photos", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
        @inject
        async def upload_photo(
                upload: UploadRequest,
                media: FromDishka[MediaStorage],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            await self.auth_api.get_session(token)
            try:
                url = await media.upload_message_photo(self._decode(upload), upload.file_name)
            except UploadError as e:
                raise to_http_exception(e) from e
            return UploadResponse(url=url)

        @self._media_router.post("/videos", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
        @inject
        async def upload_video(
                upload: UploadRequest,
                media: FromDishka[MediaStorage],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            await self.auth_api.get_session(token)
            try:
                url = await media.upload_message_video(self._decode(upload), upload.file_name)
            except UploadError as e:
                raise to_http_exception(e) from e
            return UploadResponse(url=url)

        @self._media_router.post("/profile-picture", response_model=UploadResponse,
                                 status_code=status.HTTP_201_CREATED)
        @inject
        async def upload_profile_picture(
                upload: UploadRequest,
                media: FromDishka[MediaStorage],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            session = await self.auth_api.get_session(token)
            try:
                url = await media.upload_profile_picture(self._decode(upload), session.identity_key)
            except UploadError as e:
                raise to_http_exception(e) from e
            return UploadResponse(url=url)
