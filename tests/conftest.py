from datetime import date, timedelta
from decimal import Decimal

import pytest

from models import Author, Book, Member, MembershipType
from repositories.memory import MemoryStore
from services.library import LibraryService


class FakeClock:
    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int):
        self.today += timedelta(days=days)


@pytest.fixture
def clock():
    return FakeClock(date(2024, 1, 1))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def library(store, clock):
    return LibraryService(store, daily_fine_rate=Decimal("1.00"), clock=clock)


@pytest.fixture
async def author_id(library):
    return await library.register_author(Author(name="Frank Herbert", email="frank@dune.org"))


@pytest.fixture
def add_book(library, author_id):
    counter = {"n": 0}

    async def _add(copies=1, title=None, isbn=None):
        counter["n"] += 1
        book = Book(
            title=title or f"Book {counter['n']}",
            isbn=isbn or f"978-0-00-{counter['n']:06d}",
            copies_available=copies,
            author_id=author_id,
        )
        return await library.add_book(book)

    return _add


@pytest.fixture
def add_member(library):
    counter = {"n": 0}

    async def _add(membership_type=MembershipType.BASIC, name=None, email=None):
        counter["n"] += 1
        member = Member(
            name=name or f"Member {counter['n']}",
            email=email or f"member{counter['n']}@example.com",
            phone="(555) 010-0000",
            membership_type=membership_type,
        )
        return await library.register_member(member)

    return _add
