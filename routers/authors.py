from typing import Literal

from fastapi import APIRouter, Depends

import models
from services.library import LibraryService
from utils.dependencies import get_library

router = APIRouter(prefix="/authors", tags=["Authors"])


@router.post("/", response_model=models.Author, status_code=201)
async def add_author(author: models.AuthorCreate, library: LibraryService = Depends(get_library)):
    author_id = await library.register_author(models.Author(**author.model_dump()))
    return await library.get_author(author_id)


@router.get("/", response_model=list[models.Author])
async def list_authors(order_by: Literal["id", "name"] = "name", descending: bool = False,
                       library: LibraryService = Depends(get_library)):
    return await library.list_authors(order_by=order_by, descending=descending)


@router.get("/{author_id}", response_model=models.Author)
async def get_author(author_id: int, library: LibraryService = Depends(get_library)):
    return await library.get_author(author_id)


@router.put("/{author_id}", response_model=models.Author)
async def update_author(author_id: int, author: models.AuthorCreate,
                        library: LibraryService = Depends(get_library)):
    return await library.update_author(models.Author(id=author_id, **author.model_dump()))


@router.delete("/{author_id}")
async def delete_author(author_id: int, library: LibraryService = Depends(get_library)):
    """Delete an author (only if no book references it)"""
    author = await library.get_author(author_id)
    await library.delete_author(author_id)
    return {"message": f"Author '{author.name}' has been deleted", "deleted_author_id": author_id}
