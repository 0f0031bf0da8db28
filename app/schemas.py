from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from decimal import Decimal
from datetime import datetime, date
from typing import Any, List, Optional, Generic, TypeVar

T = TypeVar("T")

# --- ENVOLTURA DE RESPUESTAS ---
class ApiResponse(BaseModel, Generic[T]):
    """Toda respuesta exitosa viaja como {success: true, data: ...}."""
    success: bool = True
    data: T

class MetaData(BaseModel):
    """Metadatos para respuestas paginadas."""
    total: int
    page: int
    limit: int
    total_pages: int

class PaginatedResponse(BaseModel, Generic[T]):
    """Estructura genérica para devolver listas paginadas."""
    success: bool = True
    data: List[T]
    meta: MetaData

def normalize_service_month(value: Any) -> date:
    """Acepta 'YYYY-MM', 'YYYY-MM-DD' o date y devuelve el día 1 del mes."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.replace(day=1)
    if isinstance(value, str):
        try:
            parts = value.strip().split("-")
            return date(int(parts[0]), int(parts[1]), 1)
        except (ValueError, IndexError):
            raise ValueError("Mes de servicio inválido, use el formato YYYY-MM")
    raise ValueError("Mes de servicio inválido, use el formato YYYY-MM")

# --- AUTENTICACIÓN ---
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class SessionUser(BaseModel):
    id: int
    email: str
    nombre: str
    rol: str

class LoginResponse(BaseModel):
    user: SessionUser
    access_token: str
    token_type: str = "bearer"

# --- USUARIOS ---
class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    role: str = Field("EMPLEADO", pattern="^(ADMIN|EMPLEADO|CLIENTE)$")

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = Field(None, pattern="^(ADMIN|EMPLEADO|CLIENTE)$")
    status: Optional[str] = Field(None, pattern="^(ACTIVE|INACTIVE)$")
    password: Optional[str] = Field(None, min_length=6)

class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# --- CATÁLOGOS ---
class ClassificationBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=5)
    description: Optional[str] = None
    color: Optional[str] = None

class ClassificationCreate(ClassificationBase):
    pass

class ClassificationResponse(ClassificationBase):
    id: int
    model_config = ConfigDict(from_attributes=True)

class PortfolioBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    is_active: bool = True

class PortfolioCreate(PortfolioBase):
    pass

class PortfolioResponse(PortfolioBase):
    id: int
    model_config = ConfigDict(from_attributes=True)

# --- CLIENTES ---
class ClientBase(BaseModel):
    """Datos base del cliente compartidos entre creación y lectura."""
    legal_name: str = Field(..., min_length=1, description="Razón social o nombre completo")
    contact_name: Optional[str] = None
    tax_id: str = Field(..., description="RUC (11 dígitos) o DNI (8 dígitos)")
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    classification_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    applies_fixed_fee: bool = False
    monthly_fee: Decimal = Field(Decimal("0"), ge=0)
    registered_at: Optional[date] = None

class ClientCreate(ClientBase):
    """Esquema para crear un nuevo cliente."""

    @field_validator("tax_id")
    @classmethod
    def validate_tax_id(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit() or len(v) not in (8, 11):
            raise ValueError("El RUC debe tener 11 dígitos o el DNI 8 dígitos")
        return v

    @model_validator(mode="after")
    def fee_only_with_flag(self):
        # El monto fijo solo tiene sentido si el cliente aplica cobro fijo
        if not self.applies_fixed_fee:
            self.monthly_fee = Decimal("0")
        return self

class ClientUpdate(BaseModel):
    legal_name: Optional[str] = Field(None, min_length=1)
    contact_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    classification_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    applies_fixed_fee: Optional[bool] = None
    monthly_fee: Optional[Decimal] = Field(None, ge=0)

    @field_validator("legal_name", "applies_fixed_fee", "monthly_fee")
    @classmethod
    def not_null(cls, v, info):
        # Se pueden omitir, pero no enviar en null: la columna es obligatoria
        if v is None:
            raise ValueError(f"El campo {info.field_name} no puede ser nulo")
        return v

class ClientStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(ACTIVE|INACTIVE)$")

class ClientResponse(BaseModel):
    """Esquema de respuesta completo con datos del sistema."""
    id: int
    legal_name: str
    contact_name: Optional[str] = None
    tax_id: str
    tax_id_last_digit: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    classification_id: Optional[int] = None
    portfolio_id: Optional[int] = None
    applies_fixed_fee: bool
    monthly_fee: Decimal
    registered_at: date
    status: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# --- PAGOS ---
class PaymentCreate(BaseModel):
    client_id: int
    amount: Decimal = Field(..., gt=0)
    payment_date: date
    service_month: date = Field(..., description="Mes de servicio (YYYY-MM)")
    status: str = Field("PENDING", pattern="^(PENDING|CONFIRMED)$")
    payment_method: Optional[str] = Field(None, description="TRANSFER, CASH, YAPE, PLIN...")
    concept: Optional[str] = None
    operation_number: Optional[str] = None
    proof_url: Optional[str] = None

    @field_validator("service_month", mode="before")
    @classmethod
    def month_start(cls, v):
        return normalize_service_month(v)

class PaymentStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(PENDING|CONFIRMED|REJECTED)$")

class PaymentResponse(BaseModel):
    id: int
    client_id: int
    amount: Decimal
    payment_date: date
    service_month: date
    status: str
    payment_method: Optional[str] = None
    concept: Optional[str] = None
    operation_number: Optional[str] = None
    proof_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class UploadResponse(BaseModel):
    url: str
    file_name: str
    original_name: str
    size: int
    content_type: str

# --- FACTURACIÓN AUTOMÁTICA ---
class GenerationRequest(BaseModel):
    service_month: date = Field(..., alias="mes", description="Mes objetivo YYYY-MM")
    client_ids: Optional[List[int]] = Field(None, alias="clientes", description="Si se omite, todos los elegibles")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("service_month", mode="before")
    @classmethod
    def month_start(cls, v):
        return normalize_service_month(v)

class GenerationResponse(BaseModel):
    service_month: date
    generated: int
    skipped: int
    total_amount: Decimal
    errors: List[str]
    message: str

class DebtResponse(BaseModel):
    client_id: int
    legal_name: str
    monthly_fee: Decimal
    last_payment_date: Optional[date] = None
    months_elapsed: int
    total_paid: Decimal
    outstanding: Decimal

# --- CLASIFICACIÓN AUTOMÁTICA ---
class ClassificationChange(BaseModel):
    client_id: int
    legal_name: str
    current_code: Optional[str] = None
    new_code: str
    months_elapsed: int
    outstanding: Decimal = Decimal("0")
    requires_change: bool

class ClassificationApplyRequest(BaseModel):
    client_ids: Optional[List[int]] = None

class ClassificationHistoryResponse(BaseModel):
    id: int
    client_id: int
    previous_code: Optional[str] = None
    new_code: str
    months_elapsed: int
    outstanding: Decimal
    reason: str
    responsible_user_id: Optional[int] = None
    changed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

# --- CRONOGRAMA SUNAT ---
class SunatScheduleRow(BaseModel):
    month: int = Field(..., ge=1, le=12)
    ruc_digit: int = Field(..., description="0, 1, 2, 4, 6, 8 o 99 (buenos contribuyentes)")
    due_day: int = Field(..., ge=1, le=31)
    due_month: int = Field(..., ge=1, le=12)

    @field_validator("ruc_digit")
    @classmethod
    def validate_digit(cls, v: int) -> int:
        if v not in (0, 1, 2, 4, 6, 8, 99):
            raise ValueError("El dígito debe ser 0, 1, 2, 4, 6, 8 o 99")
        return v

class SunatScheduleCreate(BaseModel):
    year: int = Field(..., ge=2000, le=2100)

class SunatScheduleCopy(BaseModel):
    source_year: int = Field(..., ge=2000, le=2100)
    target_year: int = Field(..., ge=2000, le=2100)

class SunatScheduleReplace(BaseModel):
    rows: List[SunatScheduleRow] = Field(..., min_length=1)

class SunatDueDate(BaseModel):
    client_id: int
    legal_name: str
    tax_id: str
    tax_id_last_digit: int
    due_date: Optional[date] = None

# --- COMPROMISOS ---
class CommitmentCreate(BaseModel):
    client_id: int
    promised_date: date
    promised_amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None

class CommitmentUpdate(BaseModel):
    status: Optional[str] = Field(None, pattern="^(PENDING|FULFILLED|BROKEN|CANCELLED)$")
    linked_payment_id: Optional[int] = None
    notes: Optional[str] = None

class CommitmentResponse(BaseModel):
    id: int
    client_id: int
    promised_date: date
    promised_amount: Decimal
    status: str
    notes: Optional[str] = None
    linked_payment_id: Optional[int] = None
    responsible_user_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class CommitmentAlerts(BaseModel):
    overdue: List[CommitmentResponse]
    today: List[CommitmentResponse]
    upcoming: List[CommitmentResponse]

# --- PLANTILLAS ---
class TemplateCreate(BaseModel):
    classification_id: int
    name: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)

class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    body: Optional[str] = None

class TemplateResponse(BaseModel):
    id: int
    classification_id: int
    name: str
    body: str

    model_config = ConfigDict(from_attributes=True)

class TemplatePreview(BaseModel):
    client_id: int
    channel_hint: Optional[str] = None
    content: str

# --- NOTIFICACIONES ---
class NotificationSend(BaseModel):
    client_id: int
    channel: str = Field(..., pattern="^(WHATSAPP|EMAIL|SMS)$")
    content: str = Field(..., min_length=1)
    subject: Optional[str] = None

class NotificationResponse(BaseModel):
    id: int
    client_id: int
    channel: str
    recipient: Optional[str] = None
    subject: Optional[str] = None
    content: str
    status: str
    detail: Optional[str] = None
    sent_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class DispatchItem(BaseModel):
    client_id: int
    client: str
    status: str                 # SENT, FAILED, SKIPPED
    channel: Optional[str] = None
    recipient: Optional[str] = None
    reason: Optional[str] = None

class DispatchSummary(BaseModel):
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    results: List[DispatchItem] = []

class ChannelStatus(BaseModel):
    whatsapp: bool
    email: bool
    sms: bool = False

# --- RECIBOS ---
class ReceiptGenerate(BaseModel):
    payment_id: int

class ReceiptResponse(BaseModel):
    id: int
    payment_id: int
    sequence: int
    receipt_number: str
    generated_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    sent_to: Optional[str] = None
    send_status: Optional[str] = None
    send_error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class ReceiptSend(BaseModel):
    email: Optional[EmailStr] = Field(None, description="Si se omite, se usa el correo del cliente")

# --- CONSULTAS EXTERNAS ---
class RucInfo(BaseModel):
    ruc: str
    legal_name: str
    status: Optional[str] = None
    condition: Optional[str] = None
    address: Optional[str] = None
    district: Optional[str] = None
    province: Optional[str] = None
    department: Optional[str] = None

class DniInfo(BaseModel):
    dni: str
    first_names: str
    paternal_surname: str
    maternal_surname: str
    full_name: str

class ExchangeRateInfo(BaseModel):
    buy_price: Decimal
    sell_price: Decimal
    base_currency: str = "USD"
    quote_currency: str = "PEN"
    rate_date: Optional[date] = None

# --- PROCESO AUTOMÁTICO ---
class ProcessRunResponse(BaseModel):
    id: int
    executed_at: Optional[datetime] = None
    trigger: str
    service_month: date
    clients_processed: int
    payments_generated: int
    reclassified: int
    reminders_sent: int
    errors: Optional[str] = None
    summary: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)
