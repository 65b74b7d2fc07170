import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, load_settings
from errors import LibraryError, StorageError
from repositories.base import Store
from repositories.memory import MemoryStore
from repositories.mongo import MongoStore
from routers import authors, books, loans, members, reports
from services.library import LibraryService

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def build_store(settings: Settings) -> Store:
    if settings.store_backend == "memory":
        return MemoryStore()
    return MongoStore(settings)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    clock: Callable[[], date] = date.today,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)
    if store is None:
        store = build_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.connect()
        logger.info("Library service started (%s store)", type(store).__name__)
        yield
        await store.close()

    app = FastAPI(title="Library Management System", lifespan=lifespan)
    app.state.settings = settings
    app.state.library = LibraryService(store, daily_fine_rate=settings.daily_fine_rate, clock=clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        if isinstance(exc, StorageError):
            logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    # Routers
    app.include_router(authors.router)
    app.include_router(books.router)
    app.include_router(members.router)
    app.include_router(loans.router)
    app.include_router(reports.router)

    @app.get("/config")
    def get_config():
        return {
            "daily_fine_rate": str(settings.daily_fine_rate),
            "store_backend": settings.store_backend,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
