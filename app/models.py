import enum

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Text, Date, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base


class ClientStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class CommitmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    BROKEN = "BROKEN"
    CANCELLED = "CANCELLED"


class NotificationChannel(str, enum.Enum):
    WHATSAPP = "WHATSAPP"
    EMAIL = "EMAIL"
    SMS = "SMS"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    EMPLEADO = "EMPLEADO"
    CLIENTE = "CLIENTE"


class Classification(Base):
    """
    Catálogo de clasificación de morosidad.
    A = al día, B = 1-2 meses de deuda, C = moroso crónico (3+ meses).
    """
    __tablename__ = "classifications"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(5), unique=True, nullable=False)
    description = Column(String, nullable=True)
    color = Column(String(20), nullable=True)


class Portfolio(Base):
    """Cartera de clientes asignada a un equipo."""
    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)


class Client(Base):
    """
    Cliente facturado.

    Attributes:
        tax_id: RUC (11 dígitos) o DNI (8 dígitos), único.
        applies_fixed_fee: Si aplica el cobro fijo mensual automático.
        monthly_fee: Monto fijo mensual (solo tiene sentido si applies_fixed_fee).
        registered_at: Fecha de alta, ancla de la deuda cuando no hay pagos.
    """
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    legal_name = Column(String, index=True, nullable=False)         # Razón Social
    contact_name = Column(String, nullable=True)
    tax_id = Column(String(11), unique=True, nullable=False)        # RUC / DNI
    tax_id_last_digit = Column(Integer, nullable=True)              # Para el cronograma SUNAT
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    classification_id = Column(Integer, ForeignKey("classifications.id"), nullable=True)
    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=True)

    applies_fixed_fee = Column(Boolean, default=False, nullable=False)
    monthly_fee = Column(Numeric(12, 2), default=0, nullable=False)
    registered_at = Column(Date, nullable=False)

    status = Column(String, default=ClientStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    classification = relationship("Classification", lazy="selectin")
    portfolio = relationship("Portfolio", lazy="selectin")
    payments = relationship("Payment", back_populates="client")


class Payment(Base):
    """
    Pago de un cliente atribuido a un mes de servicio.
    Solo puede existir un pago por (cliente, mes de servicio).
    """
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("client_id", "service_month", name="uq_payment_client_service_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    service_month = Column(Date, nullable=False)                    # Siempre el día 1 del mes
    status = Column(String, default=PaymentStatus.PENDING.value, nullable=False)

    payment_method = Column(String, nullable=True)                  # AUTOMATIC, TRANSFER, CASH, YAPE...
    concept = Column(String, nullable=True)
    operation_number = Column(String, nullable=True)
    proof_url = Column(String, nullable=True)                       # Voucher en S3

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", back_populates="payments", lazy="selectin")
    receipt = relationship("Receipt", back_populates="payment", uselist=False, passive_deletes=True)


class PaymentCommitment(Base):
    """Compromiso de pago: una promesa, no una transacción."""
    __tablename__ = "payment_commitments"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    promised_date = Column(Date, nullable=False)
    promised_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, default=CommitmentStatus.PENDING.value, nullable=False)
    notes = Column(Text, nullable=True)

    linked_payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    responsible_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", lazy="selectin")


class MessageTemplate(Base):
    """Plantilla de mensaje, una por clasificación."""
    __tablename__ = "message_templates"

    id = Column(Integer, primary_key=True, index=True)
    classification_id = Column(Integer, ForeignKey("classifications.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    body = Column(Text, nullable=False)                             # Tokens: {cliente} {contacto} {monto} {fecha} {mes}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    classification = relationship("Classification", lazy="selectin")


class Notification(Base):
    """Registro de cada intento de envío (WhatsApp / Email / SMS)."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    channel = Column(String, nullable=False)
    recipient = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    status = Column(String, default=NotificationStatus.PENDING.value, nullable=False)
    detail = Column(Text, nullable=True)                            # messageId o error del transporte
    responsible_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())


class Receipt(Base):
    """Recibo de pago con numeración correlativa."""
    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), unique=True, nullable=False)
    sequence = Column(Integer, unique=True, nullable=False)
    receipt_number = Column(String, unique=True, nullable=False)    # REC-000001
    generated_at = Column(DateTime(timezone=True), server_default=func.now())

    sent_at = Column(DateTime(timezone=True), nullable=True)
    sent_to = Column(String, nullable=True)
    send_status = Column(String, nullable=True)                     # SENT, FAILED
    send_error = Column(Text, nullable=True)

    payment = relationship("Payment", back_populates="receipt", lazy="selectin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default=UserRole.EMPLEADO.value, nullable=False)
    status = Column(String, default=ClientStatus.ACTIVE.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ExchangeRate(Base):
    """Histórico del tipo de cambio SUNAT (USD -> PEN)."""
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, index=True)
    currency_from = Column(String(3), default="USD")
    currency_to = Column(String(3), default="PEN")
    buy_price = Column(Numeric(12, 4), nullable=False)
    sell_price = Column(Numeric(12, 4), nullable=False)
    rate_date = Column(Date, nullable=True)
    source = Column(String, default="SUNAT")
    acquired_at = Column(DateTime(timezone=True), server_default=func.now())


class ProcessRun(Base):
    """Bitácora del proceso automático (manual o programado)."""
    __tablename__ = "process_runs"

    id = Column(Integer, primary_key=True, index=True)
    executed_at = Column(DateTime(timezone=True), server_default=func.now())
    trigger = Column(String, nullable=False)                        # MANUAL, SCHEDULED
    service_month = Column(Date, nullable=False)
    clients_processed = Column(Integer, default=0)
    payments_generated = Column(Integer, default=0)
    reclassified = Column(Integer, default=0)
    reminders_sent = Column(Integer, default=0)
    errors = Column(Text, nullable=True)
    summary = Column(String, nullable=True)
    status = Column(String, default="OK")                           # OK, WITH_ERRORS, FAILED


class ClassificationHistory(Base):
    """Cambio de clasificación aplicado a un cliente (automático o manual)."""
    __tablename__ = "classification_history"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    previous_code = Column(String(5), nullable=True)
    new_code = Column(String(5), nullable=False)
    months_elapsed = Column(Integer, default=0)
    outstanding = Column(Numeric(12, 2), default=0)
    reason = Column(String, default="AUTOMATIC")                    # AUTOMATIC, MANUAL
    responsible_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", lazy="selectin")


class SunatSchedule(Base):
    """
    Cronograma de vencimientos SUNAT.

    Cada fila indica el día de vencimiento de las obligaciones del periodo
    (year, month) para un grupo de último dígito de RUC. El vencimiento cae
    en `due_month` (enero del año siguiente para el periodo de diciembre).
    El dígito 99 corresponde a los buenos contribuyentes.
    """
    __tablename__ = "sunat_schedule"

    id = Column(Integer, primary_key=True, index=True)
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False)
    ruc_digit = Column(Integer, nullable=False)
    due_day = Column(Integer, nullable=False)
    due_month = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
