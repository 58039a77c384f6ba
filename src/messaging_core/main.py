import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlparse

from dishka import make_async_container
from dishka.integrations.fastapi import setup_dishka
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
import uvicorn

from messaging_core.config import Config
from messaging_core.providers import AdaptersProvider, GatewaysProvider, ServicesProvider
from messaging_core.services import AuthAPI, ConversationAPI, MediaAPI


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.dishka_container.close()


async def create_app(config: Config | None = None) -> FastAPI:
    container = make_async_container(
        AdaptersProvider(config),
        GatewaysProvider(),
        ServicesProvider(),
    )

    app = FastAPI(title="Messaging Core", lifespan=lifespan)
    setup_dishka(container, app)

    auth_api = await container.get(AuthAPI)
    conversation_api = await container.get(ConversationAPI)
    media_api = await container.get(MediaAPI)

    app.include_router(auth_api.get_router())
    app.include_router(conversation_api.get_router())
    app.include_router(media_api.get_router())

    # uploaded objects are downloaded from the path part of the storage base url
    app_config = await container.get(Config)
    Path(app_config.storage.root).mkdir(parents=True, exist_ok=True)
    app.mount(
        urlparse(app_config.storage.base_url).path.rstrip("/"),
        StaticFiles(directory=app_config.storage.root),
        name="objects"
    )

    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    app = asyncio.run(create_app())
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")


if __name__ == "__main__":
    main()
