from datetime import date
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload
from app.services.billing_engine import read_ledger
from app.services.notifications import default_template, render_template

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.get("/", response_model=schemas.ApiResponse[List[schemas.TemplateResponse]])
async def read_templates(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    return {"data": await crud.get_templates(db)}


@router.post("/", response_model=schemas.ApiResponse[schemas.TemplateResponse], status_code=status.HTTP_201_CREATED)
async def create_template(
    data: schemas.TemplateCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TEMPLATE_MANAGE)),
):
    """Crea la plantilla de una clasificación. Solo una por clasificación."""
    return {"data": await crud.create_template(db, data)}


@router.put("/{template_id}", response_model=schemas.ApiResponse[schemas.TemplateResponse])
async def update_template(
    template_id: int,
    data: schemas.TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TEMPLATE_MANAGE)),
):
    return {"data": await crud.update_template(db, template_id, data)}


@router.delete("/{template_id}")
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TEMPLATE_MANAGE)),
):
    await crud.delete_template(db, template_id)
    return {"success": True, "data": {"message": "Plantilla eliminada"}}


@router.get("/preview/{client_id}", response_model=schemas.ApiResponse[schemas.TemplatePreview])
async def preview_template(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    """Mensaje que recibiría el cliente con su plantilla y deuda actual."""
    client = await crud.get_client(db, client_id)
    today = date.today()

    entries = await read_ledger(db, today, [client_id])
    amount = entries[0].debt.outstanding if entries else client.monthly_fee

    template = await crud.get_template_by_classification(db, client.classification_id)
    code = client.classification.code if client.classification else None
    body = template.body if template else default_template(code)

    return {"data": {"client_id": client_id, "channel_hint": code, "content": render_template(body, client, amount, today, today)}}
