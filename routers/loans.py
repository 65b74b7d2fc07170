from fastapi import APIRouter, Depends

import models
from services.library import LibraryService
from utils.dependencies import get_library

router = APIRouter(prefix="/loans", tags=["Loans"])


@router.post("/issue", response_model=models.IssueResponse, status_code=201)
async def issue_book(request: models.IssueRequest, library: LibraryService = Depends(get_library)):
    loan_id = await library.issue_book(request.book_id, request.member_id)
    return models.IssueResponse(loan_id=loan_id)


@router.post("/{loan_id}/return", response_model=models.ReturnResponse)
async def return_book(loan_id: int, library: LibraryService = Depends(get_library)):
    fine = await library.return_book(loan_id)
    return models.ReturnResponse(loan_id=loan_id, fine_amount=fine)


@router.get("/active", response_model=list[models.Loan])
async def get_active_loans(library: LibraryService = Depends(get_library)):
    """All unreturned loans, soonest due first"""
    return await library.list_active_loans()


@router.get("/overdue", response_model=list[models.Loan])
async def get_overdue_loans(library: LibraryService = Depends(get_library)):
    """Unreturned loans whose due date has passed"""
    return await library.list_overdue_loans()


@router.get("/{loan_id}", response_model=models.Loan)
async def get_loan(loan_id: int, library: LibraryService = Depends(get_library)):
    return await library.get_loan(loan_id)
