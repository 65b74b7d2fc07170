from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends

import models
from services.library import LibraryService
from utils.dependencies import get_library

router = APIRouter(prefix="/members", tags=["Members"])


@router.post("/", response_model=models.Member, status_code=201)
async def register_member(member: models.MemberCreate, library: LibraryService = Depends(get_library)):
    member_id = await library.register_member(
        models.Member(join_date=library.clock(), **member.model_dump())
    )
    return await library.get_member(member_id)


@router.get("/", response_model=list[models.Member])
async def list_members(
    name: Optional[str] = None,
    order_by: Literal["id", "name", "join_date"] = "name",
    descending: bool = False,
    library: LibraryService = Depends(get_library),
):
    if name:
        return await library.search_members(name)
    return await library.list_members(order_by=order_by, descending=descending)


@router.get("/{member_id}", response_model=models.Member)
async def get_member(member_id: int, library: LibraryService = Depends(get_library)):
    return await library.get_member(member_id)


@router.put("/{member_id}", response_model=models.Member)
async def update_member(member_id: int, member: models.MemberUpdate,
                        library: LibraryService = Depends(get_library)):
    current = await library.get_member(member_id)
    join_date: date = member.join_date or current.join_date
    data = member.model_dump(exclude={"join_date"})
    return await library.update_member(models.Member(id=member_id, join_date=join_date, **data))


@router.delete("/{member_id}")
async def delete_member(member_id: int, library: LibraryService = Depends(get_library)):
    """Delete a member (only once every loan is returned)"""
    member = await library.get_member(member_id)
    await library.delete_member(member_id)
    return {
        "message": f"Member '{member.name}' ({member.email}) has been deleted successfully",
        "deleted_member_id": member_id,
    }


@router.get("/{member_id}/loans", response_model=models.MemberLoanSummary)
async def get_member_loans(member_id: int, library: LibraryService = Depends(get_library)):
    """Loan history, active count and fines for one member"""
    return await library.get_member_loan_summary(member_id)
