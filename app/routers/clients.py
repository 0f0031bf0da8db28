from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("/", response_model=schemas.PaginatedResponse[schemas.ClientResponse])
async def read_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    """Listado paginado con búsqueda por razón social, RUC/DNI o email."""
    return await crud.get_clients(db, page=page, limit=limit, search=search, status=status)


@router.get("/search", response_model=schemas.ApiResponse[List[schemas.ClientResponse]])
async def search_clients(
    q: str = Query(..., min_length=2),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    return {"data": await crud.search_clients(db, q)}


@router.get("/{client_id}", response_model=schemas.ApiResponse[schemas.ClientResponse])
async def read_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    return {"data": await crud.get_client(db, client_id)}


@router.post("/", response_model=schemas.ApiResponse[schemas.ClientResponse], status_code=status.HTTP_201_CREATED)
async def create_client(
    client: schemas.ClientCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_WRITE)),
):
    return {"data": await crud.create_client(db, client)}


@router.put("/{client_id}", response_model=schemas.ApiResponse[schemas.ClientResponse])
async def update_client(
    client_id: int,
    client: schemas.ClientUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_WRITE)),
):
    return {"data": await crud.update_client(db, client_id, client, user_id=user.user_id)}


@router.patch("/{client_id}/status", response_model=schemas.ApiResponse[schemas.ClientResponse])
async def update_client_status(
    client_id: int,
    data: schemas.ClientStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_WRITE)),
):
    """Activa o desactiva un cliente (no existe borrado físico)."""
    return {"data": await crud.set_client_status(db, client_id, data.status)}
