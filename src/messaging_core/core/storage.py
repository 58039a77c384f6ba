from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
import asyncio
import logging

from .errors import UploadError
from .identity import profile_picture_file_name


class ObjectStorageInterface(ABC):
    @abstractmethod
    async def upload_object(
            self,
            data: bytes,
            target_path: str
    ) -> str:
        """
        Stores an object and returns its download URL.
        :param data:
        :param target_path:
        :return:
        """
        raise NotImplementedError()

    @abstractmethod
    async def resolve_download_url(
            self,
            path: str
    ) -> str:
        """
        Returns the download URL of a stored object.
        :param path:
        :return:
        """
        raise NotImplementedError()


class LocalObjectStorage(ObjectStorageInterface):
    """ Object storage on the local filesystem, served under ``base_url`` """

    def __init__(self, root: str, base_url: str, logger: logging.Logger | None = None):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._logger = logger or logging.getLogger(__name__)

    def _clean_path(self, path: str) -> PurePosixPath:
        clean = PurePosixPath(path.lstrip("/"))
        if not clean.parts or ".." in clean.parts:
            raise UploadError(f"Invalid object path {path!r}")
        return clean

    def _url_for(self, path: PurePosixPath) -> str:
        return f"{self._base_url}/{path}"

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload_object(self, data: bytes, target_path: str) -> str:
        path = self._clean_path(target_path)
        try:
            await asyncio.to_thread(self._write, self._root.joinpath(*path.parts), data)
        except OSError as e:
            self._logger.error("Failed to upload object %s: %s", path, e)
            raise UploadError(f"Failed to upload {path}") from e

        url = self._url_for(path)
        self._logger.debug("Download url returned: %s", url)
        return url

    async def resolve_download_url(self, path: str) -> str:
        clean = self._clean_path(path)
        exists = await asyncio.to_thread(self._root.joinpath(*clean.parts).is_file)
        if not exists:
            self._logger.warning("Failed to get download url for %s", clean)
            raise UploadError(f"No object at {clean}")
        return self._url_for(clean)


class MediaStorage:
    """ Path conventions for profile pictures and message attachments """

    PROFILE_PICTURES = "images"
    MESSAGE_PHOTOS = "message_images"
    MESSAGE_VIDEOS = "message_videos"

    def __init__(self, storage: ObjectStorageInterface):
        self._storage = storage

    async def upload_profile_picture(self, data: bytes, email: str) -> str:
        return await self._storage.upload_object(data, f"{self.PROFILE_PICTURES}/{profile_picture_file_name(email)}")

    async def upload_message_photo(self, data: bytes, file_name: str) -> str:
        return await self._storage.upload_object(data, f"{self.MESSAGE_PHOTOS}/{file_name}")

    async def upload_message_video(self, data: bytes, file_name: str) -> str:
        return await self._storage.upload_object(data, f"{self.MESSAGE_VIDEOS}/{file_name}")

    async def download_url(self, path: str) -> str:
        return await self._storage.resolve_download_url(path)
