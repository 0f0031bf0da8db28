import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, models, schemas
from app.config import Settings, get_settings
from app.database import get_db
from app.security import UserPayload, create_session_token, get_current_user, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


class AuthService:

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> models.User:
        user = await crud.get_user_by_email(db, email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Email o contraseña incorrectos",
            )
        if user.status != models.ClientStatus.ACTIVE.value:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inactivo")
        return user


@router.post("/login", response_model=schemas.ApiResponse[schemas.LoginResponse])
async def login(
    credentials: schemas.LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Valida credenciales y deja la sesión firmada en la cookie `session`.
    El token también se devuelve para clientes que usan el header Authorization.
    """
    user = await AuthService.authenticate_user(db, credentials.email, credentials.password)
    token = create_session_token(user, settings)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        max_age=settings.session_expire_minutes * 60,
        path="/",
    )
    logger.info(f"🔐 Inicio de sesión: {user.email}")

    return {
        "data": {
            "user": {"id": user.id, "email": user.email, "nombre": user.full_name, "rol": user.role},
            "access_token": token,
        }
    }


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"success": True, "data": {"message": "Sesión cerrada"}}


@router.get("/me", response_model=schemas.ApiResponse[schemas.UserResponse])
async def read_me(
    current_user: UserPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"data": await crud.get_user(db, current_user.user_id)}
