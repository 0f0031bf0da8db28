from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.dependencies import get_dispatcher
from app.security import Permissions, RequirePermission, UserPayload
from app.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=schemas.ApiResponse[List[schemas.NotificationResponse]])
async def read_notifications(
    client_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    """Últimas notificaciones registradas."""
    return {"data": await crud.get_notifications(db, limit=limit, client_id=client_id)}


@router.post("/send", response_model=schemas.ApiResponse[schemas.NotificationResponse])
async def send_notification(
    data: schemas.NotificationSend,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    """
    Envía un mensaje a un cliente. Si el transporte falla la notificación
    queda como FAILED con el detalle del error.
    """
    client = await crud.get_client(db, data.client_id)
    notification = await dispatcher.dispatch(
        db, client, data.content, data.channel, subject=data.subject, user_id=user.user_id
    )
    return {"data": notification}


@router.post("/reminders", response_model=schemas.ApiResponse[schemas.DispatchSummary])
async def run_reminder_campaign(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    """Recordatorios automáticos para clientes B y C con deuda."""
    return {"data": await dispatcher.send_reminders(db, user_id=user.user_id)}


@router.get("/channels", response_model=schemas.ApiResponse[schemas.ChannelStatus])
async def read_channel_status(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.NOTIFICATION_SEND)),
):
    return {"data": dispatcher.channel_status()}


@router.post("/test")
async def test_channel_configuration(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.TEMPLATE_MANAGE)),
):
    return {"success": True, "data": dispatcher.test_configuration()}
