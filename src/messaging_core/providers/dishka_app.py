from dishka import Provider, Scope, provide
from typing import AsyncIterable
import logging

from messaging_core.config import Config, load_config
from messaging_core.core.db_manager import DatabaseManager
from messaging_core.core.gateways import UserGateway, MessageGateway, ConversationIndexGateway
from messaging_core.core.orchestrator import SyncOrchestrator
from messaging_core.core.storage import ObjectStorageInterface, LocalObjectStorage, MediaStorage
from messaging_core.services import AuthAPI, ConversationAPI, MediaAPI


class AdaptersProvider(Provider):
    def __init__(self, config: Config | None = None, env_path: str | None = ".env"):
        super().__init__()
        self._app_config = config
        self._env_path = env_path

    @provide(scope=Scope.APP)
    def get_config(self) -> Config:
        return self._app_config or load_config(self._env_path)

    @provide(scope=Scope.APP)
    def get_logger(self) -> logging.Logger:
        return logging.getLogger("messaging_core")

    @provide(scope=Scope.APP)
    async def get_db_manager(self, config: Config) -> AsyncIterable[DatabaseManager]:
        db_manager = DatabaseManager(config)
        await db_manager.initialize()
        await db_manager.create_tables()
        yield db_manager
        await db_manager.close()

    @provide(scope=Scope.APP)
    def get_object_storage(self, config: Config, logger: logging.Logger) -> ObjectStorageInterface:
        return LocalObjectStorage(config.storage.root, config.storage.base_url, logger)

    @provide(scope=Scope.APP)
    def get_media_storage(self, storage: ObjectStorageInterface) -> MediaStorage:
        return MediaStorage(storage)


class GatewaysProvider(Provider):
    @provide(scope=Scope.REQUEST)
    def get_user_gateway(
            self,
            db_manager: DatabaseManager,
            logger: logging.Logger
    ) -> UserGateway:
        return UserGateway(db_manager, logger)

    @provide(scope=Scope.REQUEST)
    def get_message_gateway(
            self,
            db_manager: DatabaseManager,
            logger: logging.Logger
    ) -> MessageGateway:
        return MessageGateway(db_manager, logger)

    @provide(scope=Scope.REQUEST)
    def get_index_gateway(
            self,
            db_manager: DatabaseManager,
            config: Config,
            logger: logging.Logger
    ) -> ConversationIndexGateway:
        return ConversationIndexGateway(db_manager, logger, config.index.max_write_attempts)

    @provide(scope=Scope.REQUEST)
    def get_orchestrator(
            self,
            message_gateway: MessageGateway,
            index_gateway: ConversationIndexGateway,
            logger: logging.Logger
    ) -> SyncOrchestrator:
        return SyncOrchestrator(message_gateway, index_gateway, logger=logger)


class ServicesProvider(Provider):
    @provide(scope=Scope.APP)
    def get_auth_api(
        self,
        config: Config,
        logger: logging.Logger
    ) -> AuthAPI:
        return AuthAPI(
            secret_key=config.jwt.secret_key,
            logger=logger,
            access_token_minutes=config.jwt.access_token_minutes
        )

    @provide(scope=Scope.APP)
    def get_conversation_api(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ) -> ConversationAPI:
        return ConversationAPI(
            logger=logger,
            auth_api=auth_api
        )

    @provide(scope=Scope.APP)
    def get_media_api(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ) -> MediaAPI:
        return MediaAPI(
            logger=logger,
            auth_api=auth_api
        )
