from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload
from app.services.classification import apply_classification, compute_changes

router = APIRouter(prefix="/classification", tags=["Classification"])


@router.get("/changes", response_model=schemas.ApiResponse[List[schemas.ClassificationChange]])
async def read_classification_changes(
    only_pending: bool = True,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    changes = await compute_changes(db)
    if only_pending:
        changes = [c for c in changes if c["requires_change"]]
    return {"data": changes}


@router.post("/apply")
async def apply_classification_changes(
    request: schemas.ClassificationApplyRequest,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROCESS_RUN)),
):
    """Aplica la clasificación A/B/C calculada (opcionalmente solo a algunos clientes)."""
    return {"success": True, "data": await apply_classification(db, request.client_ids, user_id=user.user_id)}


@router.get("/history", response_model=schemas.ApiResponse[List[schemas.ClassificationHistoryResponse]])
async def read_classification_history(
    client_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    """Cambios de clasificación aplicados, del más reciente al más antiguo."""
    return {"data": await crud.get_classification_history(db, client_id, limit)}
