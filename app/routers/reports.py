import io
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import CobranzaError
from app.security import Permissions, RequirePermission, UserPayload
from app.services import reports

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/delinquency")
async def read_delinquency_report(
    fecha: Optional[date] = Query(None, description="Fecha de referencia (por defecto hoy)"),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_READ)),
):
    """Morosidad: clientes con saldo pendiente y resumen por clasificación."""
    return {"success": True, "data": await reports.delinquency_report(db, fecha)}


@router.get("/cash-flow")
async def read_cash_flow_report(
    agrupar: str = Query("digit", description="digit | portfolio"),
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_READ)),
):
    return {"success": True, "data": await reports.cash_flow_report(db, agrupar, year, month)}


@router.get("/fixed-income")
async def read_fixed_income_projection(
    year: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_READ)),
):
    return {"success": True, "data": await reports.fixed_income_projection(db, year or date.today().year)}


@router.get("/{kind}/export")
async def export_report(
    kind: str,
    fecha: Optional[date] = None,
    agrupar: str = "digit",
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_READ)),
):
    """Exporta el reporte a CSV (delinquency, cash-flow o fixed-income)."""
    if kind == "delinquency":
        report = await reports.delinquency_report(db, fecha)
    elif kind == "cash-flow":
        report = await reports.cash_flow_report(db, agrupar, year, month)
    elif kind == "fixed-income":
        report = await reports.fixed_income_projection(db, year or date.today().year)
    else:
        raise CobranzaError(f"Tipo de reporte no válido: {kind}")

    content = reports.to_csv(kind, reports.export_rows(kind, report))
    filename = f"reporte_{kind}_{date.today().isoformat()}.csv"
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
