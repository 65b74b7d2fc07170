"""Repository interfaces shared by every storage backend.

Each repository handles a single entity and every call is its own unit of
work.  Writes that must land together are grouped by the caller with
``Store.transaction()``: the yielded session is passed to each repository call
through the ``session`` keyword.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from models import Author, Book, Loan, LoanStatus, Member


class AuthorRepository(ABC):
    ORDER_FIELDS = ("id", "name")

    @abstractmethod
    async def create(self, author: Author, session=None) -> int: ...

    @abstractmethod
    async def get_by_id(self, author_id: int, session=None) -> Optional[Author]: ...

    @abstractmethod
    async def list_all(self, order_by: str = "name", descending: bool = False,
                       session=None) -> list[Author]: ...

    @abstractmethod
    async def update(self, author: Author, session=None) -> bool: ...

    @abstractmethod
    async def delete(self, author_id: int, session=None) -> bool: ...

    @abstractmethod
    async def email_exists(self, email: str, exclude_id: Optional[int] = None,
                           session=None) -> bool: ...


class BookRepository(ABC):
    ORDER_FIELDS = ("id", "title", "isbn", "copies_available")

    @abstractmethod
    async def create(self, book: Book, session=None) -> int: ...

    @abstractmethod
    async def get_by_id(self, book_id: int, session=None) -> Optional[Book]: ...

    @abstractmethod
    async def list_all(self, author_id: Optional[int] = None, order_by: str = "title",
                       descending: bool = False, session=None) -> list[Book]: ...

    @abstractmethod
    async def update(self, book: Book, session=None) -> bool: ...

    @abstractmethod
    async def delete(self, book_id: int, session=None) -> bool: ...

    @abstractmethod
    async def isbn_exists(self, isbn: str, exclude_id: Optional[int] = None,
                          session=None) -> bool: ...

    @abstractmethod
    async def count_by_author(self, author_id: int, session=None) -> int: ...

    @abstractmethod
    async def search(self, term: str, session=None) -> list[Book]:
        """Case-insensitive substring match on title or ISBN."""

    @abstractmethod
    async def update_copies(self, book_id: int, delta: int, session=None) -> bool:
        """Add ``delta`` to ``copies_available``.

        Applied only if the book exists and the count stays non-negative;
        returns False otherwise and leaves the row untouched.
        """


class MemberRepository(ABC):
    ORDER_FIELDS = ("id", "name", "join_date")

    @abstractmethod
    async def create(self, member: Member, session=None) -> int: ...

    @abstractmethod
    async def get_by_id(self, member_id: int, session=None) -> Optional[Member]: ...

    @abstractmethod
    async def list_all(self, order_by: str = "name", descending: bool = False,
                       session=None) -> list[Member]: ...

    @abstractmethod
    async def update(self, member: Member, session=None) -> bool: ...

    @abstractmethod
    async def delete(self, member_id: int, session=None) -> bool: ...

    @abstractmethod
    async def email_exists(self, email: str, exclude_id: Optional[int] = None,
                           session=None) -> bool: ...

    @abstractmethod
    async def search_by_name(self, fragment: str, session=None) -> list[Member]: ...


class LoanRepository(ABC):
    ORDER_FIELDS = ("id", "loan_date", "due_date")

    @abstractmethod
    async def create(self, loan: Loan, session=None) -> int: ...

    @abstractmethod
    async def get_by_id(self, loan_id: int, session=None) -> Optional[Loan]: ...

    @abstractmethod
    async def list_all(self, member_id: Optional[int] = None, book_id: Optional[int] = None,
                       statuses: Optional[Iterable[LoanStatus]] = None, open_only: bool = False,
                       order_by: str = "due_date", descending: bool = False,
                       session=None) -> list[Loan]: ...

    @abstractmethod
    async def update(self, loan: Loan, session=None) -> bool: ...

    @abstractmethod
    async def delete(self, loan_id: int, session=None) -> bool: ...

    @abstractmethod
    async def count_open(self, member_id: Optional[int] = None, book_id: Optional[int] = None,
                         session=None) -> int:
        """Count ACTIVE/OVERDUE loans with no return date."""

    @abstractmethod
    async def mark_returned(self, loan_id: int, return_date: date, fine: Decimal,
                            session=None) -> bool:
        """Close an open loan. Returns False if it is missing or already closed."""

    @abstractmethod
    async def mark_overdue(self, loan_id: int, fine: Decimal, session=None) -> bool:
        """Set status OVERDUE and the fine on a loan that is still open."""


def check_order_field(repository, order_by: str) -> str:
    if order_by not in repository.ORDER_FIELDS:
        raise ValueError(f"Cannot order by {order_by!r}; expected one of {repository.ORDER_FIELDS}")
    return order_by


class Store(ABC):
    """Bundle of the four repositories plus the transactional scope."""

    authors: AuthorRepository
    books: BookRepository
    members: MemberRepository
    loans: LoanRepository

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager:
        """All writes made with the yielded session commit together or not at all."""

    @abstractmethod
    def snapshot(self) -> AbstractAsyncContextManager:
        """Session for a consistent multi-collection read."""

    async def connect(self):
        pass

    async def close(self):
        pass
