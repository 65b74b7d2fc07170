import functools
import logging
import re
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from bson import Decimal128
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo import errors as mongo_errors

from config import Settings
from database import (create_client, ensure_indexes, from_document, get_next_sequence,
                      test_connection, to_document, to_bson_value)
from errors import DuplicateKeyError, StorageError
from models import OPEN_LOAN_STATUSES, Author, Book, Loan, LoanStatus, Member
from repositories.base import (AuthorRepository, BookRepository, LoanRepository,
                               MemberRepository, Store, check_order_field)

logger = logging.getLogger(__name__)

OPEN_STATUS_VALUES = [s.value for s in OPEN_LOAN_STATUSES]


def translate_errors(func):
    """Re-raise driver failures as the library's own error types."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except mongo_errors.DuplicateKeyError as exc:
            raise DuplicateKeyError(
                f"{self.label} with this {self.unique_field or 'id'} already exists"
            ) from exc
        except mongo_errors.PyMongoError as exc:
            logger.error("%s.%s failed: %s", self.collection_name, func.__name__, exc)
            raise StorageError(f"Storage failure on {self.collection_name}: {exc}") from exc

    return wrapper


class _MongoRepository:
    collection_name: str
    label: str
    model: type
    unique_field: Optional[str] = None

    def __init__(self, db):
        self.db = db
        self.collection = db[self.collection_name]

    async def _unique_taken(self, value, exclude_id=None, session=None) -> bool:
        query = {self.unique_field: value}
        if exclude_id is not None:
            query["id"] = {"$ne": exclude_id}
        return await self.collection.count_documents(query, limit=1, session=session) > 0

    async def _find(self, query: dict, order_by: str, descending: bool, session=None) -> list:
        check_order_field(self, order_by)
        direction = DESCENDING if descending else ASCENDING
        items = []
        async for doc in self.collection.find(query, session=session).sort(
            [(order_by, direction), ("id", ASCENDING)]
        ):
            items.append(self.model(**from_document(doc)))
        return items

    @translate_errors
    async def create(self, entity, session=None) -> int:
        if self.unique_field:
            value = getattr(entity, self.unique_field)
            if await self._unique_taken(value, session=session):
                raise DuplicateKeyError(f"{self.label} with {self.unique_field} {value} already exists")

        # Ids come from the shared counters document outside the caller's
        # transaction, so concurrent inserts don't write-conflict on it.
        # A rolled-back insert leaves a gap in the sequence.
        next_id = await get_next_sequence(self.db, self.collection_name)
        doc = {**to_document(entity), "id": next_id}
        await self.collection.insert_one(doc, session=session)
        return next_id

    @translate_errors
    async def get_by_id(self, entity_id: int, session=None):
        doc = await self.collection.find_one({"id": entity_id}, session=session)
        if not doc:
            return None
        return self.model(**from_document(doc))

    @translate_errors
    async def update(self, entity, session=None) -> bool:
        if self.unique_field:
            value = getattr(entity, self.unique_field)
            if await self._unique_taken(value, exclude_id=entity.id, session=session):
                raise DuplicateKeyError(f"{self.label} with {self.unique_field} {value} already exists")

        result = await self.collection.update_one(
            {"id": entity.id}, {"$set": to_document(entity)}, session=session
        )
        return result.matched_count > 0

    @translate_errors
    async def delete(self, entity_id: int, session=None) -> bool:
        result = await self.collection.delete_one({"id": entity_id}, session=session)
        return result.deleted_count > 0


class MongoAuthorRepository(_MongoRepository, AuthorRepository):
    collection_name = "authors"
    label = "Author"
    model = Author
    unique_field = "email"

    @translate_errors
    async def list_all(self, order_by="name", descending=False, session=None):
        return await self._find({}, order_by, descending, session)

    @translate_errors
    async def email_exists(self, email, exclude_id=None, session=None):
        return await self._unique_taken(email, exclude_id, session)


class MongoBookRepository(_MongoRepository, BookRepository):
    collection_name = "books"
    label = "Book"
    model = Book
    unique_field = "isbn"

    @translate_errors
    async def list_all(self, author_id=None, order_by="title", descending=False, session=None):
        query = {} if author_id is None else {"author_id": author_id}
        return await self._find(query, order_by, descending, session)

    @translate_errors
    async def isbn_exists(self, isbn, exclude_id=None, session=None):
        return await self._unique_taken(isbn, exclude_id, session)

    @translate_errors
    async def count_by_author(self, author_id, session=None):
        return await self.collection.count_documents({"author_id": author_id}, session=session)

    @translate_errors
    async def search(self, term, session=None):
        pattern = {"$regex": re.escape(term.strip()), "$options": "i"}
        query = {"$or": [{"title": pattern}, {"isbn": pattern}]}
        return await self._find(query, "title", False, session)

    @translate_errors
    async def update_copies(self, book_id, delta, session=None):
        query = {"id": book_id}
        if delta < 0:
            # Conditional decrement: never lets copies_available go below zero
            query["copies_available"] = {"$gte": -delta}
        result = await self.collection.update_one(
            query, {"$inc": {"copies_available": delta}}, session=session
        )
        return result.matched_count > 0


class MongoMemberRepository(_MongoRepository, MemberRepository):
    collection_name = "members"
    label = "Member"
    model = Member
    unique_field = "email"

    @translate_errors
    async def list_all(self, order_by="name", descending=False, session=None):
        return await self._find({}, order_by, descending, session)

    @translate_errors
    async def email_exists(self, email, exclude_id=None, session=None):
        return await self._unique_taken(email, exclude_id, session)

    @translate_errors
    async def search_by_name(self, fragment, session=None):
        query = {"name": {"$regex": re.escape(fragment.strip()), "$options": "i"}}
        return await self._find(query, "name", False, session)


class MongoLoanRepository(_MongoRepository, LoanRepository):
    collection_name = "loans"
    label = "Loan"
    model = Loan

    @staticmethod
    def _query(member_id=None, book_id=None, statuses: Optional[Iterable[LoanStatus]] = None,
               open_only=False) -> dict:
        query = {}
        if member_id is not None:
            query["member_id"] = member_id
        if book_id is not None:
            query["book_id"] = book_id

        wanted = None if statuses is None else {LoanStatus(s) for s in statuses}
        if open_only:
            wanted = set(OPEN_LOAN_STATUSES) if wanted is None else wanted & set(OPEN_LOAN_STATUSES)
            query["return_date"] = None
        if wanted is not None:
            query["status"] = {"$in": sorted(s.value for s in wanted)}
        return query

    @translate_errors
    async def list_all(self, member_id=None, book_id=None, statuses=None, open_only=False,
                       order_by="due_date", descending=False, session=None):
        query = self._query(member_id, book_id, statuses, open_only)
        return await self._find(query, order_by, descending, session)

    @translate_errors
    async def count_open(self, member_id=None, book_id=None, session=None):
        query = self._query(member_id, book_id, open_only=True)
        return await self.collection.count_documents(query, session=session)

    @translate_errors
    async def mark_returned(self, loan_id: int, return_date: date, fine: Decimal, session=None):
        result = await self.collection.update_one(
            {"id": loan_id, "status": {"$in": OPEN_STATUS_VALUES}, "return_date": None},
            {
                "$set": {
                    "status": LoanStatus.RETURNED.value,
                    "return_date": to_bson_value(return_date),
                    "fine_amount": Decimal128(fine),
                }
            },
            session=session,
        )
        return result.matched_count > 0

    @translate_errors
    async def mark_overdue(self, loan_id: int, fine: Decimal, session=None):
        result = await self.collection.update_one(
            {"id": loan_id, "status": {"$in": OPEN_STATUS_VALUES}, "return_date": None},
            {"$set": {"status": LoanStatus.OVERDUE.value, "fine_amount": Decimal128(fine)}},
            session=session,
        )
        return result.matched_count > 0


class MongoStore(Store):
    """Repositories backed by MongoDB.

    Transactions and snapshot reads need a replica set (a single-node one is
    enough for development). Ids are allocated outside transactions, so
    unlike the in-memory store a rollback does not give its ids back.
    """

    def __init__(self, settings: Settings, client: Optional[AsyncIOMotorClient] = None):
        self.client = client or create_client(settings)
        self.db = self.client[settings.mongo_db]
        self.authors = MongoAuthorRepository(self.db)
        self.books = MongoBookRepository(self.db)
        self.members = MongoMemberRepository(self.db)
        self.loans = MongoLoanRepository(self.db)

    async def connect(self):
        try:
            await test_connection(self.client)
            await ensure_indexes(self.db)
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Could not connect to MongoDB: {exc}") from exc

    @asynccontextmanager
    async def transaction(self):
        try:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    yield session
        except mongo_errors.PyMongoError as exc:
            logger.error("Transaction aborted: %s", exc)
            raise StorageError(f"Transaction failed: {exc}") from exc

    @asynccontextmanager
    async def snapshot(self):
        try:
            async with await self.client.start_session(snapshot=True) as session:
                yield session
        except mongo_errors.PyMongoError as exc:
            raise StorageError(f"Snapshot read failed: {exc}") from exc

    async def close(self):
        self.client.close()
