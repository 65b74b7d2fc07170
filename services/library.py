"""Library service: the workflows that span more than one repository.

Repositories each guard a single entity (uniqueness, guarded counters).  The
service adds the rules that need several of them at once (availability, loan
limits, referential checks on delete) and decides where the transaction
boundaries are.  Issuing and returning a book each touch both a loan and a
book row inside a single ``store.transaction()``.
"""

import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional

from errors import (LoanLimitExceededError, NotFoundError, ReferentialIntegrityError,
                    UnavailableError, ValidationError)
from models import (Author, Book, LibraryStatistics, Loan, LoanStatus, Member,
                    MemberLoanSummary, ReconciliationResult, to_money)
from repositories.base import Store
from services.reconciliation import ReconciliationJob

logger = logging.getLogger(__name__)

DEFAULT_DAILY_FINE_RATE = Decimal("1.00")


def is_valid_email(email: Optional[str]) -> bool:
    # Structural check only
    return bool(email) and "@" in email and "." in email


def is_valid_phone(phone: Optional[str]) -> bool:
    return phone is not None and len(re.sub(r"[^0-9]", "", phone)) >= 10


class LibraryService:
    def __init__(
        self,
        store: Store,
        daily_fine_rate: Decimal = DEFAULT_DAILY_FINE_RATE,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.daily_fine_rate = daily_fine_rate
        self.clock = clock
        self.reconciliation = ReconciliationJob(store, daily_fine_rate, clock)

    # ---- authors
    async def register_author(self, author: Author) -> int:
        author_id = await self.store.authors.create(author)
        logger.info("Author registered | id=%s email=%s", author_id, author.email)
        return author_id

    async def get_author(self, author_id: int) -> Author:
        author = await self.store.authors.get_by_id(author_id)
        if author is None:
            raise NotFoundError(f"Author {author_id} not found")
        return author

    async def list_authors(self, order_by: str = "name", descending: bool = False) -> list[Author]:
        return await self.store.authors.list_all(order_by=order_by, descending=descending)

    async def update_author(self, author: Author) -> Author:
        if not await self.store.authors.update(author):
            raise NotFoundError(f"Author {author.id} not found")
        return author

    async def delete_author(self, author_id: int) -> None:
        async with self.store.transaction() as session:
            if await self.store.authors.get_by_id(author_id, session=session) is None:
                raise NotFoundError(f"Author {author_id} not found")
            books = await self.store.books.count_by_author(author_id, session=session)
            if books:
                raise ReferentialIntegrityError(
                    f"Author {author_id} still has {books} book(s) in the catalog"
                )
            await self.store.authors.delete(author_id, session=session)
        logger.info("Author deleted | id=%s", author_id)

    # ---- books
    async def add_book(self, book: Book) -> int:
        async with self.store.transaction() as session:
            if await self.store.authors.get_by_id(book.author_id, session=session) is None:
                raise NotFoundError(f"Author {book.author_id} not found")
            book_id = await self.store.books.create(book, session=session)
        logger.info("Book added | id=%s isbn=%s copies=%s", book_id, book.isbn, book.copies_available)
        return book_id

    async def get_book(self, book_id: int) -> Book:
        book = await self.store.books.get_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    async def list_books(self, author_id: Optional[int] = None, order_by: str = "title",
                         descending: bool = False) -> list[Book]:
        return await self.store.books.list_all(
            author_id=author_id, order_by=order_by, descending=descending
        )

    async def search_books(self, term: str) -> list[Book]:
        """Books whose title or ISBN contains ``term``, or whose author's name does."""
        t = term.strip().lower()
        if not t:
            return await self.list_books()

        async with self.store.snapshot() as session:
            found = {b.id: b for b in await self.store.books.search(t, session=session)}
            authors = await self.store.authors.list_all(session=session)
            for author in authors:
                if t in author.name.lower():
                    for b in await self.store.books.list_all(author_id=author.id, session=session):
                        found.setdefault(b.id, b)
        return sorted(found.values(), key=lambda b: (b.title, b.id))

    async def update_book(self, book: Book) -> Book:
        """Update catalog details. ``copies_available`` keeps its stored value;
        only issue, return and ``adjust_book_copies`` move it."""
        async with self.store.transaction() as session:
            current = await self.store.books.get_by_id(book.id, session=session)
            if current is None:
                raise NotFoundError(f"Book {book.id} not found")
            if await self.store.authors.get_by_id(book.author_id, session=session) is None:
                raise NotFoundError(f"Author {book.author_id} not found")
            book = book.model_copy(update={"copies_available": current.copies_available})
            await self.store.books.update(book, session=session)
        return book

    async def adjust_book_copies(self, book_id: int, delta: int) -> Book:
        async with self.store.transaction() as session:
            book = await self.store.books.get_by_id(book_id, session=session)
            if book is None:
                raise NotFoundError(f"Book {book_id} not found")
            if not await self.store.books.update_copies(book_id, delta, session=session):
                raise ValidationError(
                    f"Cannot change copies by {delta}: only {book.copies_available} available"
                )
        logger.info("Book copies adjusted | id=%s delta=%s", book_id, delta)
        return book.model_copy(update={"copies_available": book.copies_available + delta})

    async def delete_book(self, book_id: int) -> None:
        async with self.store.transaction() as session:
            if await self.store.books.get_by_id(book_id, session=session) is None:
                raise NotFoundError(f"Book {book_id} not found")
            open_loans = await self.store.loans.count_open(book_id=book_id, session=session)
            if open_loans:
                raise ReferentialIntegrityError(
                    f"Book {book_id} has {open_loans} copy(ies) on loan"
                )
            await self.store.books.delete(book_id, session=session)
        logger.info("Book deleted | id=%s", book_id)

    # ---- members
    @staticmethod
    def _validate_member(member: Member) -> None:
        if not is_valid_email(member.email):
            raise ValidationError(f"Invalid email format: {member.email!r}")
        if not is_valid_phone(member.phone):
            raise ValidationError(f"Invalid phone number: {member.phone!r} (need at least 10 digits)")

    async def register_member(self, member: Member) -> int:
        self._validate_member(member)
        member_id = await self.store.members.create(member)
        logger.info("Member registered | id=%s type=%s", member_id, member.membership_type.value)
        return member_id

    async def get_member(self, member_id: int) -> Member:
        member = await self.store.members.get_by_id(member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found")
        return member

    async def list_members(self, order_by: str = "name", descending: bool = False) -> list[Member]:
        return await self.store.members.list_all(order_by=order_by, descending=descending)

    async def search_members(self, name: str) -> list[Member]:
        return await self.store.members.search_by_name(name)

    async def update_member(self, member: Member) -> Member:
        self._validate_member(member)
        if not await self.store.members.update(member):
            raise NotFoundError(f"Member {member.id} not found")
        return member

    async def delete_member(self, member_id: int) -> None:
        async with self.store.transaction() as session:
            if await self.store.members.get_by_id(member_id, session=session) is None:
                raise NotFoundError(f"Member {member_id} not found")
            active = await self.store.loans.count_open(member_id=member_id, session=session)
            if active:
                raise ReferentialIntegrityError(
                    f"Member {member_id} has {active} active loan(s); return them first"
                )
            await self.store.members.delete(member_id, session=session)
        logger.info("Member deleted | id=%s", member_id)

    # ---- circulation
    async def issue_book(self, book_id: int, member_id: int) -> int:
        today = self.clock()

        async with self.store.transaction() as session:
            member = await self.store.members.get_by_id(member_id, session=session)
            if member is None:
                raise NotFoundError(f"Member {member_id} not found")

            book = await self.store.books.get_by_id(book_id, session=session)
            if book is None:
                raise NotFoundError(f"Book {book_id} not found")

            if book.copies_available <= 0:
                logger.warning("Issue rejected, no copies | book=%s member=%s", book_id, member_id)
                raise UnavailableError(f"Book '{book.title}' is not available")

            current = await self.store.loans.count_open(member_id=member_id, session=session)
            if current >= member.max_books_allowed:
                logger.warning("Issue rejected, loan limit | book=%s member=%s", book_id, member_id)
                raise LoanLimitExceededError(
                    f"Member has reached maximum loan limit ({member.max_books_allowed} books)"
                )

            loan = Loan(
                book_id=book_id,
                member_id=member_id,
                loan_date=today,
                due_date=today + timedelta(days=member.loan_duration_days),
            )
            loan_id = await self.store.loans.create(loan, session=session)

            # Guarded decrement; losing a race here rolls the loan insert back too
            if not await self.store.books.update_copies(book_id, -1, session=session):
                raise UnavailableError(f"Book '{book.title}' is not available")

        logger.info("Book issued | loan=%s book=%s member=%s due=%s",
                    loan_id, book_id, member_id, loan.due_date)
        return loan_id

    async def return_book(self, loan_id: int) -> Decimal:
        today = self.clock()

        async with self.store.transaction() as session:
            loan = await self.store.loans.get_by_id(loan_id, session=session)
            if loan is None or loan.status == LoanStatus.RETURNED:
                raise NotFoundError(f"Loan {loan_id} not found or already returned")

            fine = loan.calculate_fine(self.daily_fine_rate, today)
            if not await self.store.loans.mark_returned(loan_id, today, fine, session=session):
                raise NotFoundError(f"Loan {loan_id} not found or already returned")
            if not await self.store.books.update_copies(loan.book_id, 1, session=session):
                raise NotFoundError(f"Book {loan.book_id} for loan {loan_id} no longer exists")

        if fine > 0:
            logger.info("Book returned | loan=%s fine=$%s", loan_id, fine)
        else:
            logger.info("Book returned | loan=%s no fine", loan_id)
        return fine

    async def get_loan(self, loan_id: int) -> Loan:
        loan = await self.store.loans.get_by_id(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    async def list_active_loans(self) -> list[Loan]:
        return await self.store.loans.list_all(open_only=True)

    async def list_overdue_loans(self) -> list[Loan]:
        today = self.clock()
        return [l for l in await self.store.loans.list_all(open_only=True) if l.is_overdue(today)]

    async def process_daily_reconciliation(self) -> ReconciliationResult:
        return await self.reconciliation.run()

    # ---- reporting
    async def get_member_loan_summary(self, member_id: int) -> MemberLoanSummary:
        async with self.store.snapshot() as session:
            member = await self.store.members.get_by_id(member_id, session=session)
            if member is None:
                raise NotFoundError(f"Member {member_id} not found")
            loans = await self.store.loans.list_all(
                member_id=member_id, order_by="loan_date", descending=True, session=session
            )

        return MemberLoanSummary(
            member=member,
            loans=loans,
            total_loans=len(loans),
            active_loans=sum(1 for l in loans if l.is_open),
            total_fines=to_money(sum((l.fine_amount for l in loans), Decimal("0"))),
        )

    async def get_library_statistics(self) -> LibraryStatistics:
        today = self.clock()
        async with self.store.snapshot() as session:
            authors = await self.store.authors.list_all(session=session)
            books = await self.store.books.list_all(session=session)
            members = await self.store.members.list_all(session=session)
            open_loans = await self.store.loans.list_all(open_only=True, session=session)

        return LibraryStatistics(
            total_authors=len(authors),
            total_books=len(books),
            total_copies=sum(b.copies_available for b in books),
            total_members=len(members),
            active_loans=len(open_loans),
            overdue_loans=sum(1 for l in open_loans if l.is_overdue(today)),
        )
