import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.config import Settings, get_settings
from app.database import get_db
from app.dependencies import get_dispatcher
from app.exceptions import CobranzaError
from app.security import Permissions, RequirePermission, UserPayload
from app.services.notifications import NotificationDispatcher, email_layout
from app.utils.receipt_pdf import generate_receipt_pdf, receipt_data_from

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/receipts", tags=["Receipts"])


def _company(settings: Settings) -> dict:
    return {
        "name": settings.company_name,
        "ruc": settings.company_ruc,
        "address": settings.company_address,
        "phone": settings.company_phone,
    }


@router.post("/", response_model=schemas.ApiResponse[schemas.ReceiptResponse], status_code=status.HTTP_201_CREATED)
async def generate_receipt(
    data: schemas.ReceiptGenerate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.RECEIPT_MANAGE)),
):
    """Genera el recibo del pago. Si ya existe, devuelve el mismo."""
    return {"data": await crud.create_receipt(db, data.payment_id)}


@router.get("/", response_model=schemas.PaginatedResponse[schemas.ReceiptResponse])
async def read_receipts(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.RECEIPT_READ)),
):
    return await crud.get_receipts(db, page=page, limit=limit)


@router.get("/{receipt_id}", response_model=schemas.ApiResponse[schemas.ReceiptResponse])
async def read_receipt(
    receipt_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.RECEIPT_READ)),
):
    return {"data": await crud.get_receipt(db, receipt_id)}


@router.get("/{receipt_id}/pdf")
async def download_receipt_pdf(
    receipt_id: int,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: UserPayload = Depends(RequirePermission(Permissions.RECEIPT_READ)),
):
    receipt = await crud.get_receipt(db, receipt_id)
    payment = receipt.payment
    pdf_buffer = generate_receipt_pdf(receipt_data_from(receipt, payment, payment.client), _company(settings))

    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f"inline; filename={receipt.receipt_number}.pdf"},
    )


@router.post("/{receipt_id}/send", response_model=schemas.ApiResponse[schemas.ReceiptResponse])
async def send_receipt(
    receipt_id: int,
    data: schemas.ReceiptSend,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.RECEIPT_MANAGE)),
):
    """Envía el recibo por email con el PDF adjunto y registra el resultado."""
    receipt = await crud.get_receipt(db, receipt_id)
    payment = receipt.payment
    client = payment.client

    to = data.email or client.email
    if not to:
        raise CobranzaError("El cliente no tiene email registrado")

    pdf_buffer = generate_receipt_pdf(receipt_data_from(receipt, payment, client), _company(settings))
    content = (
        f"<p>Adjuntamos el recibo <strong>{receipt.receipt_number}</strong> "
        f"por S/ {payment.amount:.2f} correspondiente a {payment.service_month.strftime('%m/%Y')}.</p>"
    )
    result = await dispatcher.email.send(
        to,
        f"Recibo de pago {receipt.receipt_number} - {settings.company_name}",
        email_layout(settings.company_name, client.legal_name, content, title="Recibo de Pago"),
        attachments=[(f"{receipt.receipt_number}.pdf", pdf_buffer.getvalue())],
    )
    if not result.success:
        logger.warning(f"⚠️ No se pudo enviar {receipt.receipt_number}: {result.detail}")

    return {"data": await crud.mark_receipt_sent(db, receipt, to, result.success, None if result.success else result.detail)}
