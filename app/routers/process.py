from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.config import Settings, get_settings
from app.database import get_db
from app.dependencies import get_dispatcher
from app.security import Permissions, RequirePermission, UserPayload
from app.services.notifications import NotificationDispatcher
from app.services.process import run_monthly_process

router = APIRouter(prefix="/process", tags=["Process"])


@router.post("/run", response_model=schemas.ApiResponse[schemas.ProcessRunResponse])
async def run_process(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    user: UserPayload = Depends(RequirePermission(Permissions.PROCESS_RUN)),
):
    """Ejecuta manualmente el proceso automático del mes en curso."""
    run = await run_monthly_process(db, dispatcher, settings, trigger="MANUAL", user_id=user.user_id)
    return {"data": run}


@router.get("/runs", response_model=schemas.ApiResponse[List[schemas.ProcessRunResponse]])
async def read_process_runs(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROCESS_RUN)),
):
    return {"data": await crud.get_process_runs(db)}
