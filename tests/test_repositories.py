from datetime import date
from decimal import Decimal

import pytest

from errors import DuplicateKeyError, StorageError
from models import Author, Book, Loan, LoanStatus, Member


async def test_create_assigns_sequential_ids(store):
    first = await store.authors.create(Author(name="Ursula", email="ursula@example.com"))
    second = await store.authors.create(Author(name="Iain", email="iain@example.com"))

    assert (first, second) == (1, 2)
    author = await store.authors.get_by_id(first)
    assert author.id == 1
    assert author.name == "Ursula"


async def test_duplicate_email_and_isbn(store):
    await store.authors.create(Author(name="A", email="same@example.com"))
    with pytest.raises(DuplicateKeyError):
        await store.authors.create(Author(name="B", email="same@example.com"))

    await store.books.create(Book(title="X", isbn="111", author_id=1))
    with pytest.raises(DuplicateKeyError):
        await store.books.create(Book(title="Y", isbn="111", author_id=1))

    assert await store.books.isbn_exists("111")
    assert not await store.books.isbn_exists("222")


async def test_update_rejects_email_of_another_row(store):
    first = await store.members.create(Member(name="A", email="a@x.org", phone="5550100000"))
    await store.members.create(Member(name="B", email="b@x.org", phone="5550100000"))

    member = await store.members.get_by_id(first)
    assert await store.members.update(member.model_copy(update={"name": "A2"}))
    assert not await store.members.email_exists("a@x.org", exclude_id=first)
    with pytest.raises(DuplicateKeyError):
        await store.members.update(member.model_copy(update={"email": "b@x.org"}))


async def test_update_and_delete_missing_ids(store):
    ghost = Author(id=99, name="Nobody", email="nobody@example.com")
    assert await store.authors.update(ghost) is False
    assert await store.authors.delete(99) is False
    assert await store.authors.get_by_id(99) is None


async def test_returned_rows_are_copies(store):
    book_id = await store.books.create(Book(title="X", isbn="1", copies_available=2, author_id=1))
    book = await store.books.get_by_id(book_id)
    book.copies_available = 0

    assert (await store.books.get_by_id(book_id)).copies_available == 2


async def test_update_copies_never_goes_negative(store):
    book_id = await store.books.create(Book(title="X", isbn="1", copies_available=1, author_id=1))

    assert await store.books.update_copies(book_id, -1)
    assert not await store.books.update_copies(book_id, -1)
    assert (await store.books.get_by_id(book_id)).copies_available == 0
    assert await store.books.update_copies(book_id, 3)
    assert (await store.books.get_by_id(book_id)).copies_available == 3
    assert not await store.books.update_copies(42, 1)


async def test_list_all_ordering_and_filters(store):
    await store.books.create(Book(title="b-title", isbn="2", author_id=1))
    await store.books.create(Book(title="a-title", isbn="1", author_id=2))
    await store.books.create(Book(title="c-title", isbn="3", author_id=1))

    assert [b.title for b in await store.books.list_all()] == ["a-title", "b-title", "c-title"]
    assert [b.id for b in await store.books.list_all(order_by="id", descending=True)] == [3, 2, 1]
    assert [b.id for b in await store.books.list_all(author_id=1)] == [1, 3]
    with pytest.raises(ValueError):
        await store.books.list_all(order_by="price")


async def test_search(store):
    await store.books.create(Book(title="Dune", isbn="9780441172719", author_id=1))
    await store.books.create(Book(title="Clean Code", isbn="9780132350884", author_id=1))
    await store.members.create(Member(name="Alice Reader", email="a@x.org", phone="5550100000"))

    assert [b.title for b in await store.books.search("dUnE")] == ["Dune"]
    assert [b.title for b in await store.books.search("0132")] == ["Clean Code"]
    assert [m.name for m in await store.members.search_by_name("reader")] == ["Alice Reader"]


async def test_loan_queries_and_guarded_transitions(store):
    loan_id = await store.loans.create(
        Loan(book_id=1, member_id=7, loan_date=date(2024, 1, 1), due_date=date(2024, 1, 15))
    )
    await store.loans.create(
        Loan(book_id=2, member_id=7, loan_date=date(2024, 1, 1), due_date=date(2024, 1, 5))
    )

    assert await store.loans.count_open(member_id=7) == 2
    assert await store.loans.count_open(book_id=1) == 1
    assert [l.due_date for l in await store.loans.list_all(open_only=True)] == [
        date(2024, 1, 5), date(2024, 1, 15)
    ]

    assert await store.loans.mark_overdue(loan_id, Decimal("2.00"))
    assert await store.loans.mark_returned(loan_id, date(2024, 1, 20), Decimal("5.00"))
    assert not await store.loans.mark_returned(loan_id, date(2024, 1, 21), Decimal("6.00"))
    assert not await store.loans.mark_overdue(loan_id, Decimal("9.00"))

    loan = await store.loans.get_by_id(loan_id)
    assert loan.status == LoanStatus.RETURNED
    assert loan.return_date == date(2024, 1, 20)
    assert loan.fine_amount == Decimal("5.00")
    assert await store.loans.count_open(member_id=7) == 1
    assert len(await store.loans.list_all(statuses=[LoanStatus.RETURNED])) == 1


async def test_transaction_rolls_back_every_write(store):
    book_id = await store.books.create(Book(title="X", isbn="1", copies_available=1, author_id=1))

    with pytest.raises(StorageError):
        async with store.transaction() as session:
            await store.loans.create(
                Loan(book_id=book_id, member_id=1, loan_date=date(2024, 1, 1),
                     due_date=date(2024, 1, 15)),
                session=session,
            )
            await store.books.update_copies(book_id, -1, session=session)
            raise StorageError("connection lost")

    assert await store.loans.list_all() == []
    assert (await store.books.get_by_id(book_id)).copies_available == 1

    # sequences roll back too
    assert await store.loans.create(
        Loan(book_id=book_id, member_id=1, loan_date=date(2024, 1, 1), due_date=date(2024, 1, 15))
    ) == 1
