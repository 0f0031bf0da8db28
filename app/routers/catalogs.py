from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload, get_current_user

router = APIRouter(prefix="/catalogs", tags=["Catalogs"])


# --- CLASIFICACIONES ---
@router.get("/classifications", response_model=schemas.ApiResponse[List[schemas.ClassificationResponse]])
async def read_classifications(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user),
):
    return {"data": await crud.get_classifications(db)}


@router.post("/classifications", response_model=schemas.ApiResponse[schemas.ClassificationResponse], status_code=status.HTTP_201_CREATED)
async def create_classification(
    data: schemas.ClassificationCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    return {"data": await crud.create_classification(db, data)}


@router.put("/classifications/{classification_id}", response_model=schemas.ApiResponse[schemas.ClassificationResponse])
async def update_classification(
    classification_id: int,
    data: schemas.ClassificationCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    return {"data": await crud.update_classification(db, classification_id, data)}


@router.delete("/classifications/{classification_id}")
async def delete_classification(
    classification_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    await crud.delete_classification(db, classification_id)
    return {"success": True, "data": {"message": "Clasificación eliminada"}}


# --- CARTERAS ---
@router.get("/portfolios", response_model=schemas.ApiResponse[List[schemas.PortfolioResponse]])
async def read_portfolios(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user),
):
    return {"data": await crud.get_portfolios(db)}


@router.post("/portfolios", response_model=schemas.ApiResponse[schemas.PortfolioResponse], status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    data: schemas.PortfolioCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    return {"data": await crud.create_portfolio(db, data)}


@router.put("/portfolios/{portfolio_id}", response_model=schemas.ApiResponse[schemas.PortfolioResponse])
async def update_portfolio(
    portfolio_id: int,
    data: schemas.PortfolioCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    return {"data": await crud.update_portfolio(db, portfolio_id, data)}


@router.delete("/portfolios/{portfolio_id}", response_model=schemas.ApiResponse[schemas.PortfolioResponse])
async def deactivate_portfolio(
    portfolio_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CATALOG_MANAGE)),
):
    return {"data": await crud.delete_portfolio(db, portfolio_id)}
