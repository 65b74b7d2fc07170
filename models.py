from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

CENTS = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# ---------- Enums ----------
class MembershipType(str, Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)

MAX_BOOKS_ALLOWED = {
    MembershipType.BASIC: 3,
    MembershipType.PREMIUM: 10,
}

LOAN_DURATION_DAYS = {
    MembershipType.BASIC: 14,
    MembershipType.PREMIUM: 21,
}


# ---------- Entities ----------
class Author(BaseModel):
    id: Optional[int] = None
    name: str
    email: str
    birth_year: Optional[int] = None
    biography: Optional[str] = None


class Book(BaseModel):
    id: Optional[int] = None
    title: str
    isbn: str
    publication_year: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0)
    copies_available: int = Field(0, ge=0)
    author_id: int


class Member(BaseModel):
    id: Optional[int] = None
    name: str
    email: str
    phone: str
    join_date: date = Field(default_factory=date.today)
    membership_type: MembershipType = MembershipType.BASIC

    @property
    def max_books_allowed(self) -> int:
        return MAX_BOOKS_ALLOWED[self.membership_type]

    @property
    def loan_duration_days(self) -> int:
        return LOAN_DURATION_DAYS[self.membership_type]


class Loan(BaseModel):
    """A single lending of one copy of a book to a member.

    ``fine_amount`` is recomputed from ``due_date`` each time it is refreshed,
    so it only depends on the day the computation runs.
    """

    id: Optional[int] = None
    book_id: int
    member_id: int
    loan_date: date
    due_date: date
    return_date: Optional[date] = None
    fine_amount: Decimal = Field(Decimal("0.00"), ge=0)
    status: LoanStatus = LoanStatus.ACTIVE

    @model_validator(mode="after")
    def check_return_date_matches_status(self):
        if (self.status == LoanStatus.RETURNED) != (self.return_date is not None):
            raise ValueError("status RETURNED requires a return_date and vice versa")
        return self

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_LOAN_STATUSES and self.return_date is None

    def is_overdue(self, today: date) -> bool:
        return self.is_open and self.due_date < today

    def days_overdue(self, today: date) -> int:
        if not self.is_overdue(today):
            return 0
        return (today - self.due_date).days

    def calculate_fine(self, daily_rate: Decimal, today: date) -> Decimal:
        return to_money(Decimal(daily_rate) * self.days_overdue(today))


# ---------- Requests ----------
class AuthorCreate(BaseModel):
    name: str
    email: str
    birth_year: Optional[int] = None
    biography: Optional[str] = None


class BookCreate(BaseModel):
    title: str
    isbn: str
    publication_year: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0)
    copies_available: int = Field(1, ge=0)  # Number of copies to add
    author_id: int


class BookUpdate(BaseModel):
    title: str
    isbn: str
    publication_year: Optional[int] = None
    price: Optional[Decimal] = Field(None, ge=0)
    author_id: int


class MemberCreate(BaseModel):
    name: str
    email: str
    phone: str
    membership_type: MembershipType = MembershipType.BASIC


class MemberUpdate(MemberCreate):
    join_date: Optional[date] = None


class IssueRequest(BaseModel):
    book_id: int
    member_id: int


# ---------- Responses ----------
class IssueResponse(BaseModel):
    loan_id: int


class ReturnResponse(BaseModel):
    loan_id: int
    fine_amount: Decimal


class MemberLoanSummary(BaseModel):
    member: Member
    loans: list[Loan]
    total_loans: int
    active_loans: int
    total_fines: Decimal


class LibraryStatistics(BaseModel):
    total_authors: int
    total_books: int
    total_copies: int
    total_members: int
    active_loans: int
    overdue_loans: int


class ReconciliationResult(BaseModel):
    run_date: date
    newly_overdue: int  # ACTIVE loans moved to OVERDUE by this run
    total_overdue: int
    total_outstanding_fines: Decimal
