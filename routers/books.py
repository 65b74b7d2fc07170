from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException

import models
from services.library import LibraryService
from utils.dependencies import get_library

router = APIRouter(prefix="/books", tags=["Books"])


@router.post("/", response_model=models.Book, status_code=201)
async def add_book(book: models.BookCreate, library: LibraryService = Depends(get_library)):
    book_id = await library.add_book(models.Book(**book.model_dump()))
    return await library.get_book(book_id)


@router.get("/", response_model=list[models.Book])
async def list_books(
    q: Optional[str] = None,
    author_id: Optional[int] = None,
    order_by: Literal["id", "title", "isbn", "copies_available"] = "title",
    descending: bool = False,
    library: LibraryService = Depends(get_library),
):
    if q:
        # simple search on title/isbn/author name
        return await library.search_books(q)
    return await library.list_books(author_id=author_id, order_by=order_by, descending=descending)


@router.get("/{book_id}", response_model=models.Book)
async def get_book(book_id: int, library: LibraryService = Depends(get_library)):
    return await library.get_book(book_id)


@router.put("/{book_id}", response_model=models.Book)
async def update_book(book_id: int, book: models.BookUpdate,
                      library: LibraryService = Depends(get_library)):
    """Edit catalog details; copies are changed through PATCH /books/{id}/copies"""
    return await library.update_book(models.Book(id=book_id, **book.model_dump()))


@router.patch("/{book_id}/copies", response_model=models.Book)
async def adjust_copies(book_id: int, delta: int, library: LibraryService = Depends(get_library)):
    """Add (positive delta) or remove (negative delta) copies on the shelf"""
    if delta == 0:
        raise HTTPException(status_code=400, detail="Number of copies must be non-zero")
    return await library.adjust_book_copies(book_id, delta)


@router.delete("/{book_id}")
async def delete_book(book_id: int, library: LibraryService = Depends(get_library)):
    """Remove a book from the catalog (only if no copy is on loan)"""
    book = await library.get_book(book_id)
    await library.delete_book(book_id)
    return {"message": f"Book '{book.title}' has been removed from the library"}
