"""Finance router for derived departure reports."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.finance import DeparturePL, DeparturePLRequest
from ..services.finance_service import FinanceService

router = APIRouter(prefix="/v1/finance", tags=["finance"])


@router.post("/departure-pl", response_model=DeparturePL)
async def departure_pl(
    request: DeparturePLRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Profit and loss of a departure.

    Computed from the current bookings and vendor costs on every call; nothing is cached.
    """
    report = await FinanceService(db).departure_pl(request)
    return JSONResponse(status_code=200, content=report.model_dump(mode="json"))
