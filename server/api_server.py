"""HTTP surface of the vector indexing engine.

Run with ``python -m server.api_server`` or any ASGI server pointed at ``server.api_server:app``.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from services.vector_index.bootstrap import IndexEngine, build_engine
from server.routers.EventRouter import router as event_router
from server.routers.IndexRouter import router as index_router
from server.routers.SearchRouter import router as search_router
from server.routers.StatusRouter import router as status_router

logging = setup_logging("api")
app_version = os.getenv("APP_VERSION", "unknown")

DESCRIPTION = (
    "Keeps a vector database in sync with the records of an application. "
    "Record changes posted to /events/{record_type} are debounced into a durable "
    "queue and indexed as chunked embeddings; /search/{record_type} queries them."
)


def create_app(
    helper_config: HelperConfig | None = None,
    engine_factory: Callable[[HelperConfig], IndexEngine] = build_engine,
    boot_clients: bool = True,
) -> FastAPI:
    """
    Args:
        helper_config (HelperConfig | None): Settings; read from the environment when omitted.
        engine_factory (Callable): Builds the engine, tests hand in fakes through it.
        boot_clients (bool): Boot and healthcheck the HTTP backends on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        config = helper_config or HelperConfig(logger=logging)
        app.state.logging = logging
        app.state.helper_config = config

        engine = engine_factory(config)
        await engine.start(boot_clients=boot_clients)
        app.state.engine = engine
        if boot_clients:
            await engine.check_backends()

        stop_event = asyncio.Event()
        worker_task = None
        if engine.settings.queue_enabled and config.get_bool_val("VECTOR_WORKER_IN_PROCESS", default=False):
            logging.info("Consuming the change queue inside the API process.")
            worker_task = asyncio.create_task(engine.worker.run(stop_event))

        try:
            yield
        finally:
            stop_event.set()
            if worker_task is not None:
                await worker_task
            await engine.close()
            logging.info("Engine closed.")

    app = FastAPI(title="vector_sync", description=DESCRIPTION, version=app_version, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in (event_router, index_router, search_router, status_router):
        app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_SERVER_PORT", "8000"))
    logging.info("Starting vector_sync API v%s on port %d", app_version, port)
    uvicorn.run(app, host="0.0.0.0", port=port)
