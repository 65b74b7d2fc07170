"""In-memory repositories.

Same contract as the MongoDB backend; used by the test suite and by
``STORE_BACKEND=memory`` for local runs without a database.  Rows are stored
as model copies so callers never hold a reference into the store.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Callable, Dict, Optional

from errors import DuplicateKeyError
from models import OPEN_LOAN_STATUSES, Author, Book, Loan, LoanStatus, Member
from repositories.base import (AuthorRepository, BookRepository, LoanRepository,
                               MemberRepository, Store, check_order_field)


class _MemoryRepository:
    table: str
    label: str
    unique_field: Optional[str] = None

    def __init__(self, store: "MemoryStore"):
        self._store = store

    @property
    def _rows(self) -> Dict[int, object]:
        return self._store.tables[self.table]

    def _unique_taken(self, value, exclude_id=None) -> bool:
        return any(
            getattr(row, self.unique_field) == value and row.id != exclude_id
            for row in self._rows.values()
        )

    def _find(self, predicate: Callable, order_by: str, descending: bool) -> list:
        check_order_field(self, order_by)
        items = [row.model_copy() for row in self._rows.values() if predicate(row)]
        items.sort(key=lambda row: row.id)
        items.sort(key=lambda row: getattr(row, order_by), reverse=descending)
        return items

    async def create(self, entity, session=None) -> int:
        if self.unique_field:
            value = getattr(entity, self.unique_field)
            if self._unique_taken(value):
                raise DuplicateKeyError(f"{self.label} with {self.unique_field} {value} already exists")

        next_id = self._store.next_id(self.table)
        self._rows[next_id] = entity.model_copy(update={"id": next_id})
        return next_id

    async def get_by_id(self, entity_id: int, session=None):
        row = self._rows.get(entity_id)
        return row.model_copy() if row is not None else None

    async def update(self, entity, session=None) -> bool:
        if entity.id not in self._rows:
            return False
        if self.unique_field:
            value = getattr(entity, self.unique_field)
            if self._unique_taken(value, exclude_id=entity.id):
                raise DuplicateKeyError(f"{self.label} with {self.unique_field} {value} already exists")
        self._rows[entity.id] = entity.model_copy()
        return True

    async def delete(self, entity_id: int, session=None) -> bool:
        return self._rows.pop(entity_id, None) is not None


class MemoryAuthorRepository(_MemoryRepository, AuthorRepository):
    table = "authors"
    label = "Author"
    unique_field = "email"

    async def list_all(self, order_by="name", descending=False, session=None):
        return self._find(lambda a: True, order_by, descending)

    async def email_exists(self, email, exclude_id=None, session=None):
        return self._unique_taken(email, exclude_id)


class MemoryBookRepository(_MemoryRepository, BookRepository):
    table = "books"
    label = "Book"
    unique_field = "isbn"

    async def list_all(self, author_id=None, order_by="title", descending=False, session=None):
        return self._find(
            lambda b: author_id is None or b.author_id == author_id, order_by, descending
        )

    async def isbn_exists(self, isbn, exclude_id=None, session=None):
        return self._unique_taken(isbn, exclude_id)

    async def count_by_author(self, author_id, session=None):
        return sum(1 for b in self._rows.values() if b.author_id == author_id)

    async def search(self, term, session=None):
        t = term.lower().strip()
        return self._find(lambda b: t in b.title.lower() or t in b.isbn.lower(), "title", False)

    async def update_copies(self, book_id, delta, session=None):
        book: Optional[Book] = self._rows.get(book_id)
        if book is None or book.copies_available + delta < 0:
            return False
        self._rows[book_id] = book.model_copy(
            update={"copies_available": book.copies_available + delta}
        )
        return True


class MemoryMemberRepository(_MemoryRepository, MemberRepository):
    table = "members"
    label = "Member"
    unique_field = "email"

    async def list_all(self, order_by="name", descending=False, session=None):
        return self._find(lambda m: True, order_by, descending)

    async def email_exists(self, email, exclude_id=None, session=None):
        return self._unique_taken(email, exclude_id)

    async def search_by_name(self, fragment, session=None):
        t = fragment.lower().strip()
        return self._find(lambda m: t in m.name.lower(), "name", False)


class MemoryLoanRepository(_MemoryRepository, LoanRepository):
    table = "loans"
    label = "Loan"

    @staticmethod
    def _matches(loan: Loan, member_id, book_id, statuses, open_only) -> bool:
        if member_id is not None and loan.member_id != member_id:
            return False
        if book_id is not None and loan.book_id != book_id:
            return False
        if statuses is not None and loan.status not in statuses:
            return False
        if open_only and not loan.is_open:
            return False
        return True

    async def list_all(self, member_id=None, book_id=None, statuses=None, open_only=False,
                       order_by="due_date", descending=False, session=None):
        wanted = None if statuses is None else {LoanStatus(s) for s in statuses}
        return self._find(
            lambda l: self._matches(l, member_id, book_id, wanted, open_only),
            order_by,
            descending,
        )

    async def count_open(self, member_id=None, book_id=None, session=None):
        return sum(
            1 for l in self._rows.values()
            if self._matches(l, member_id, book_id, None, open_only=True)
        )

    async def mark_returned(self, loan_id, return_date, fine, session=None):
        loan: Optional[Loan] = self._rows.get(loan_id)
        if loan is None or not loan.is_open:
            return False
        self._rows[loan_id] = loan.model_copy(
            update={"status": LoanStatus.RETURNED, "return_date": return_date, "fine_amount": fine}
        )
        return True

    async def mark_overdue(self, loan_id, fine, session=None):
        loan: Optional[Loan] = self._rows.get(loan_id)
        if loan is None or loan.status not in OPEN_LOAN_STATUSES or loan.return_date is not None:
            return False
        self._rows[loan_id] = loan.model_copy(
            update={"status": LoanStatus.OVERDUE, "fine_amount": fine}
        )
        return True


class MemoryStore(Store):
    """Process-local store.

    ``transaction()`` serializes writers on an ``asyncio.Lock`` and restores a
    deep copy of every table if the block raises.  The lock is not reentrant,
    so transactions must not nest.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[int, object]] = {
            "authors": {},
            "books": {},
            "members": {},
            "loans": {},
        }
        self._sequences: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.authors = MemoryAuthorRepository(self)
        self.books = MemoryBookRepository(self)
        self.members = MemoryMemberRepository(self)
        self.loans = MemoryLoanRepository(self)

    def next_id(self, table: str) -> int:
        self._sequences[table] = self._sequences.get(table, 0) + 1
        return self._sequences[table]

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            saved = copy.deepcopy((self.tables, self._sequences))
            try:
                yield self
            except BaseException:
                self.tables, self._sequences = saved
                raise

    @asynccontextmanager
    async def snapshot(self):
        async with self._lock:
            yield self
