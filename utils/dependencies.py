from fastapi import Request

from services.library import LibraryService


async def get_library(request: Request) -> LibraryService:
    """The service built at startup and stored on the application state."""
    return request.app.state.library
