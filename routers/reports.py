from fastapi import APIRouter, Depends

import models
from services.library import LibraryService
from utils.dependencies import get_library

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/statistics", response_model=models.LibraryStatistics)
async def get_statistics(library: LibraryService = Depends(get_library)):
    return await library.get_library_statistics()


@router.post("/daily-reconciliation", response_model=models.ReconciliationResult)
async def run_daily_reconciliation(library: LibraryService = Depends(get_library)):
    """Mark past-due loans OVERDUE and recompute their fines for today"""
    return await library.process_daily_reconciliation()
