from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, models, schemas
from app.database import get_db
from app.exceptions import CobranzaError
from app.security import Permissions, RequirePermission, UserPayload

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=schemas.ApiResponse[List[schemas.UserResponse]])
async def read_users(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE)),
):
    return {"data": await crud.get_users(db)}


@router.post("/", response_model=schemas.ApiResponse[schemas.UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(
    data: schemas.UserCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE)),
):
    return {"data": await crud.create_user(db, data)}


@router.put("/{user_id}", response_model=schemas.ApiResponse[schemas.UserResponse])
async def update_user(
    user_id: int,
    data: schemas.UserUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE)),
):
    return {"data": await crud.update_user(db, user_id, data)}


@router.delete("/{user_id}", response_model=schemas.ApiResponse[schemas.UserResponse])
async def deactivate_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE)),
):
    """Baja lógica: el usuario queda INACTIVE."""
    if user_id == user.user_id:
        raise CobranzaError("No puede desactivar su propio usuario")
    return {"data": await crud.update_user(db, user_id, schemas.UserUpdate(status=models.ClientStatus.INACTIVE.value))}
