"""
Registration Routes (admin)

GET /admin/registrations - New registrations (?year, ?user, ?dateFrom, ?dateTo, ?limit)
GET /admin/registrations/stats - Per user / program / day statistics
GET /admin/registrations/export - CSV export of the filtered registrations
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import Response

from portal.db.postgres import Database, get_database
from portal.core.auth import get_current_admin
from portal.services.registrations import RegistrationFilters, RegistrationService

router = APIRouter(prefix="/admin/registrations", tags=["Registrations"])


def registration_filters(
    year: Optional[int] = None,
    user: Optional[str] = None,
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
) -> RegistrationFilters:
    if date_from and date_to and date_from > date_to:
        raise HTTPException(status_code=400, detail="dateFrom must be on or before dateTo")
    return RegistrationFilters(year=year, user=user or None, date_from=date_from, date_to=date_to)


@router.get("")
async def list_registrations(
    limit: int = Query(100, ge=1, le=1000),
    admin: dict = Depends(get_current_admin),
    filters: RegistrationFilters = Depends(registration_filters),
    db: Database = Depends(get_database)
):
    return RegistrationService(db).list_registrations(filters, limit=limit)


@router.get("/stats")
async def registration_stats(
    admin: dict = Depends(get_current_admin),
    filters: RegistrationFilters = Depends(registration_filters),
    db: Database = Depends(get_database)
):
    return RegistrationService(db).registration_stats(filters)


@router.get("/export")
async def export_registrations(
    admin: dict = Depends(get_current_admin),
    filters: RegistrationFilters = Depends(registration_filters),
    db: Database = Depends(get_database)
):
    content = RegistrationService(db).export_csv(filters)
    filename = f"student_registrations_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
