from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# --- UTILIDADES ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_session_token(user, settings: Optional[Settings] = None, expires_delta: Optional[timedelta] = None) -> str:
    """
    Firma (HS256) los datos de sesión del usuario.

    Los claims conservan la forma de la sesión original
    `{userId, email, nombre, rol, timestamp}` más `sub` y `exp`.
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.session_expire_minutes))

    to_encode = {
        "sub": user.email,
        "userId": user.id,
        "email": user.email,
        "nombre": user.full_name,
        "rol": user.role,
        "timestamp": int(now.timestamp() * 1000),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

def decode_session_token(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    """Verifica firma y expiración. Retorna None si el token no es válido."""
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"Token de sesión inválido: {e}")
        return None

# --- PERMISOS ---
class Permissions:
    # CLIENTES
    CLIENT_READ = "client:read"
    CLIENT_WRITE = "client:write"

    # PAGOS
    PAYMENT_READ = "payment:read"
    PAYMENT_WRITE = "payment:write"
    PAYMENT_CONFIRM = "payment:confirm"
    BILLING_RUN = "billing:run"

    # COMPROMISOS
    COMMITMENT_READ = "commitment:read"
    COMMITMENT_WRITE = "commitment:write"

    # NOTIFICACIONES Y PLANTILLAS
    TEMPLATE_MANAGE = "template:manage"
    NOTIFICATION_SEND = "notification:send"

    # RECIBOS
    RECEIPT_READ = "receipt:read"
    RECEIPT_MANAGE = "receipt:manage"

    # REPORTES Y CRONOGRAMA
    REPORT_READ = "report:read"
    SCHEDULE_MANAGE = "schedule:manage"

    # CONSULTAS EXTERNAS
    LOOKUP_USE = "lookup:use"

    # SISTEMA
    CATALOG_MANAGE = "catalog:manage"
    USER_MANAGE = "user:manage"
    PROCESS_RUN = "process:run"

ROLE_PERMISSIONS = {
    "ADMIN": ["*"],

    "EMPLEADO": [
        Permissions.CLIENT_READ,
        Permissions.CLIENT_WRITE,
        Permissions.PAYMENT_READ,
        Permissions.PAYMENT_WRITE,
        Permissions.BILLING_RUN,
        Permissions.COMMITMENT_READ,
        Permissions.COMMITMENT_WRITE,
        Permissions.NOTIFICATION_SEND,
        Permissions.RECEIPT_READ,
        Permissions.RECEIPT_MANAGE,
        Permissions.LOOKUP_USE,
        Permissions.REPORT_READ,
    ],

    "CLIENTE": [
        Permissions.RECEIPT_READ,
    ],
}

# --- DEPENDENCIAS FASTAPI ---
class UserPayload:
    def __init__(self, sub: str, role: str, user_id: int, name: Optional[str] = None):
        self.sub = sub
        self.role = role
        self.user_id = user_id
        self.name = name
        self.permissions = ROLE_PERMISSIONS.get(role, [])

    def has_permission(self, required_perm: str) -> bool:
        if "*" in self.permissions: return True
        return required_perm in self.permissions

def get_current_user(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> UserPayload:
    """
    Lee el token firmado de la cookie `session` o del header Authorization.
    La presencia de la cookie ya no basta: se verifica firma y expiración.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Credenciales inválidas o expiradas",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = request.cookies.get(settings.session_cookie_name) or bearer_token
    if not token:
        raise credentials_exception

    payload = decode_session_token(token, settings)
    if payload is None:
        raise credentials_exception

    email: str = payload.get("sub")
    role: str = payload.get("rol")
    user_id: int = payload.get("userId")

    if email is None or user_id is None:
        raise credentials_exception

    return UserPayload(sub=email, role=role, user_id=user_id, name=payload.get("nombre"))

class RequirePermission:
    def __init__(self, permission: str):
        self.permission = permission

    def __call__(self, user: UserPayload = Depends(get_current_user)):
        if not user.has_permission(self.permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. Requieres permiso: {self.permission}"
            )
        return user
