import logging

import pytest

from messaging_core.config import Config, JWTConfig, DBConfig, StorageConfig, IndexConfig
from messaging_core.core.db_manager import DatabaseManager
from messaging_core.core.dto import SessionContext
from messaging_core.core.gateways import UserGateway, MessageGateway, ConversationIndexGateway
from messaging_core.core.orchestrator import SyncOrchestrator


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        jwt=JWTConfig(secret_key="test-secret"),
        db=DBConfig(path=str(tmp_path / "messenger.db")),
        storage=StorageConfig(root=str(tmp_path / "objects"), base_url="http://testserver/objects"),
        index=IndexConfig(max_write_attempts=5)
    )


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("messaging_core.tests")


@pytest.fixture
async def db_manager(config):
    manager = DatabaseManager(config)
    await manager.initialize()
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def user_gateway(db_manager, logger) -> UserGateway:
    return UserGateway(db_manager, logger)


@pytest.fixture
def message_gateway(db_manager, logger) -> MessageGateway:
    return MessageGateway(db_manager, logger)


@pytest.fixture
def index_gateway(db_manager, logger) -> ConversationIndexGateway:
    return ConversationIndexGateway(db_manager, logger, max_write_attempts=5)


@pytest.fixture
def orchestrator(message_gateway, index_gateway, logger) -> SyncOrchestrator:
    return SyncOrchestrator(message_gateway, index_gateway, logger=logger)


async def _session_for(user_gateway: UserGateway, email: str, name: str) -> SessionContext:
    user = await user_gateway.register_user(email, name)
    return SessionContext(identity_key=user.identity_key, display_name=user.display_name)


@pytest.fixture
async def alice(user_gateway) -> SessionContext:
    return await _session_for(user_gateway, "a@x.com", "Alice")


@pytest.fixture
async def bob(user_gateway) -> SessionContext:
    return await _session_for(user_gateway, "b@x.com", "Bob")


@pytest.fixture
async def carol(user_gateway) -> SessionContext:
    return await _session_for(user_gateway, "c@x.com", "Carol")
