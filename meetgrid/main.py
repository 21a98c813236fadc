import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from meetgrid.config import get_settings
from meetgrid.controllers.events import router as events_router
from meetgrid.controllers.health import router as health_router
from meetgrid.controllers.users import router as users_router
from meetgrid.errors import register_exception_handlers
from meetgrid.lifespan import cleanup_resources, setup_resources
from meetgrid.middleware import HTTPLogMiddleware

settings = get_settings()

app = FastAPI(title="Meetgrid API", version="1.0.0")
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.request:
    logging.getLogger("meetgrid.http").setLevel(logging.DEBUG)
    app.add_middleware(HTTPLogMiddleware)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)


app.router.lifespan_context = lifespan

app.include_router(health_router)
app.include_router(events_router)
app.include_router(users_router)

if settings.features.metrics:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
