"""
Sustainability Report Endpoint
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ecotrack.database.connection import get_db_dependency
from ecotrack.database.models import Store
from ecotrack.reporting.snapshot import build_report
from ecotrack.serving.api.dependencies import get_current_store

router = APIRouter()


@router.get("")
async def get_report(
    store: Store = Depends(get_current_store),
    db: AsyncSession = Depends(get_db_dependency),
) -> Dict[str, Any]:
    """Current figures and the 0-100 sustainability score."""
    return await build_report(db, store)
