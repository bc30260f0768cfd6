# vida_node/protocol_rpc/fastapi_server.py

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from vida_node.protocol_rpc.app_lifespan import node_lifespan
from vida_node.protocol_rpc.configuration import NodeSettings
from vida_node.protocol_rpc.health import health_router
from vida_node.protocol_rpc.logging_config import setup_loguru_config
from vida_node.protocol_rpc.root_hash import root_hash_router


def create_app(settings: Optional[NodeSettings] = None) -> FastAPI:
    """Create the node application. Settings default to the environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        load_dotenv()
        setup_loguru_config()
        node_settings = settings or NodeSettings.from_environment()

        async with node_lifespan(app, node_settings):
            yield

    app = FastAPI(title="Vida Node", version="1.0.0", lifespan=lifespan)
    app.include_router(root_hash_router)
    app.include_router(health_router)
    return app


app = create_app()
