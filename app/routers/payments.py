from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.dependencies import get_storage
from app.schemas import normalize_service_month
from app.security import Permissions, RequirePermission, UserPayload
from app.services.storage import ProofStorage

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/", response_model=schemas.PaginatedResponse[schemas.PaymentResponse])
async def read_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    client_id: Optional[int] = None,
    status: Optional[str] = None,
    mes: Optional[str] = Query(None, description="Mes de servicio YYYY-MM"),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_READ)),
):
    service_month: Optional[date] = normalize_service_month(mes) if mes else None
    return await crud.get_payments(
        db, page=page, limit=limit, client_id=client_id, status=status, service_month=service_month
    )


@router.post("/upload", response_model=schemas.ApiResponse[schemas.UploadResponse])
async def upload_proof(
    file: UploadFile = File(...),
    folder: str = Form("comprobantes"),
    storage: ProofStorage = Depends(get_storage),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_WRITE)),
):
    """
    Sube el comprobante de pago (JPG, PNG o PDF, máximo 5 MB).
    Retorna la URL pública para guardarla en `proof_url`.
    """
    data = await file.read()
    return {"data": await storage.upload(data, file.filename or "archivo", file.content_type, folder)}


@router.get("/{payment_id}", response_model=schemas.ApiResponse[schemas.PaymentResponse])
async def read_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_READ)),
):
    return {"data": await crud.get_payment(db, payment_id)}


@router.post("/", response_model=schemas.ApiResponse[schemas.PaymentResponse], status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment: schemas.PaymentCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_WRITE)),
):
    return {"data": await crud.create_payment(db, payment)}


@router.patch("/{payment_id}/status", response_model=schemas.ApiResponse[schemas.PaymentResponse])
async def update_payment_status(
    payment_id: int,
    data: schemas.PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_CONFIRM)),
):
    """Confirma o rechaza un pago."""
    return {"data": await crud.update_payment_status(db, payment_id, data.status)}


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_WRITE)),
):
    """Solo se eliminan pagos no confirmados."""
    await crud.delete_payment(db, payment_id)
    return {"success": True, "data": {"message": "Pago eliminado"}}
