import logging
from datetime import date
from decimal import Decimal
from typing import Callable

from models import LoanStatus, ReconciliationResult, to_money
from repositories.base import Store

logger = logging.getLogger(__name__)


class ReconciliationJob:
    """Daily sweep that moves past-due loans to OVERDUE and refreshes their fines.

    Fines are recomputed from the due date on every run, so running the sweep
    twice on the same day leaves the same values behind.  Loans that are not
    yet due are left alone, which keeps OVERDUE from ever going back to ACTIVE.
    """

    def __init__(self, store: Store, daily_fine_rate: Decimal, clock: Callable[[], date] = date.today):
        self.store = store
        self.daily_fine_rate = daily_fine_rate
        self.clock = clock

    async def run(self) -> ReconciliationResult:
        today = self.clock()
        newly_overdue = 0
        total_overdue = 0
        total_fines = Decimal("0.00")

        async with self.store.transaction() as session:
            open_loans = await self.store.loans.list_all(open_only=True, session=session)
            for loan in open_loans:
                if not loan.is_overdue(today):
                    continue

                fine = loan.calculate_fine(self.daily_fine_rate, today)
                if not await self.store.loans.mark_overdue(loan.id, fine, session=session):
                    # Closed since it was listed
                    continue

                if loan.status == LoanStatus.ACTIVE:
                    newly_overdue += 1
                total_overdue += 1
                total_fines += fine

        result = ReconciliationResult(
            run_date=today,
            newly_overdue=newly_overdue,
            total_overdue=total_overdue,
            total_outstanding_fines=to_money(total_fines),
        )
        logger.info(
            "Daily reconciliation %s: %d loans marked overdue, %d total overdue, $%s in fines",
            today, newly_overdue, total_overdue, result.total_outstanding_fines,
        )
        return result
