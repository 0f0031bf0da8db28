import asyncio
import logging
import re
import smtplib
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from email.message import EmailMessage
from typing import Iterable, List, Optional, Tuple

import httpx
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, models
from app.config import Settings
from app.exceptions import CobranzaError
from app.services.billing_engine import read_ledger

logger = logging.getLogger(__name__)

REMINDER_CLASSIFICATIONS = ("B", "C")

DEFAULT_TEMPLATES = {
    "B": "Estimado {cliente}, le recordamos que tiene un pago pendiente de S/ {monto}. Por favor regularice su situación a la brevedad. Gracias.",
    "C": "Estimado {cliente}, su cuenta presenta una deuda vencida de S/ {monto}. Comuníquese urgentemente para evitar el corte del servicio.",
}
FALLBACK_TEMPLATE = "Estimado {cliente}, le recordamos sobre su pago pendiente de S/ {monto}. Gracias por su atención."

_HTML_TAG = re.compile(r"<[^>]*>")


# --- PLANTILLAS ---
def default_template(classification_code: Optional[str]) -> str:
    return DEFAULT_TEMPLATES.get(classification_code or "", FALLBACK_TEMPLATE)

def render_template(
    body: str,
    client: models.Client,
    amount: Decimal,
    due_date: Optional[date] = None,
    service_month: Optional[date] = None,
) -> str:
    """Reemplaza todas las apariciones de {cliente} {contacto} {monto} {fecha} {mes}."""
    due_date = due_date or date.today()
    service_month = service_month or due_date
    values = {
        "{cliente}": client.legal_name or "",
        "{contacto}": client.contact_name or "",
        "{monto}": f"{Decimal(amount or 0):.2f}",
        "{fecha}": due_date.strftime("%d/%m/%Y"),
        "{mes}": service_month.strftime("%Y-%m"),
    }
    for token, value in values.items():
        body = body.replace(token, value)
    return body

def strip_html(text: str) -> str:
    return re.sub(r"\s+", " ", _HTML_TAG.sub("", text)).strip()

def email_layout(company_name: str, client_name: str, content: str, title: str = "Notificación Importante") -> str:
    """Envoltura HTML simple para los correos salientes."""
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{title}</title></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background-color: #1f2937; color: white; padding: 20px; text-align: center;">
        <h1 style="margin: 0;">{company_name}</h1>
        <p>{title}</p>
      </div>
      <div style="padding: 20px; background-color: #f9f9f9;">
        <h2 style="color: #1f2937;">Estimado/a {client_name},</h2>
        {content}
      </div>
      <div style="padding: 20px; text-align: center; font-size: 12px; color: #666;">
        <p>Este es un mensaje automático del sistema de {company_name}</p>
      </div>
    </div>
  </body>
</html>"""


# --- TRANSPORTES ---
@dataclass
class SendResult:
    success: bool
    detail: Optional[str] = None


class WhatsAppTransport:
    """Cliente de Evolution API: POST {base}/message/sendText/{instance}."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client

    @property
    def enabled(self) -> bool:
        return self.settings.whatsapp_enabled

    async def send(self, number: str, text: str) -> SendResult:
        if not self.enabled:
            return SendResult(False, "Configuración de WhatsApp no disponible")

        url = f"{self.settings.evolution_base_url.rstrip('/')}/message/sendText/{self.settings.evolution_instance_key}"
        headers = {"Authorization": f"Bearer {self.settings.evolution_token}"}
        payload = {"number": number, "text": text}

        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload, headers=headers, timeout=self.settings.http_timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                    resp = await client.post(url, json=payload, headers=headers)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Error enviando WhatsApp a {number}: {e}")
            return SendResult(False, str(e))

        key = data.get("key") if isinstance(data, dict) else None
        if resp.is_success and isinstance(key, dict) and key.get("id"):
            return SendResult(True, key.get("id"))

        error = data.get("message") if isinstance(data, dict) else None
        logger.warning(f"⚠️ Evolution API devolvió {resp.status_code} para {number}")
        return SendResult(False, str(error or "Error enviando WhatsApp"))


class EmailTransport:
    """Envío SMTP. smtplib es bloqueante, así que corre en un hilo aparte."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.email_enabled

    def _deliver(self, message: EmailMessage):
        s = self.settings
        if int(s.email_port) == 465:
            with smtplib.SMTP_SSL(s.email_host, s.email_port, timeout=s.http_timeout_seconds) as smtp:
                smtp.login(s.email_user, s.email_pass)
                smtp.send_message(message)
        else:
            with smtplib.SMTP(s.email_host, s.email_port, timeout=s.http_timeout_seconds) as smtp:
                smtp.starttls()
                smtp.login(s.email_user, s.email_pass)
                smtp.send_message(message)

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        attachments: Iterable[Tuple[str, bytes]] = (),
    ) -> SendResult:
        if not self.enabled:
            return SendResult(False, "Configuración de email no disponible")

        message = EmailMessage()
        message["From"] = self.settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or strip_html(html))
        message.add_alternative(html, subtype="html")
        for filename, data in attachments:
            message.add_attachment(data, maintype="application", subtype="pdf", filename=filename)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ Error enviando email a {to}: {e}")
            return SendResult(False, str(e))
        return SendResult(True, message.get("Message-ID"))


# --- DESPACHADOR ---
class NotificationDispatcher:
    """
    Registra y envía notificaciones.

    Cada intento queda en la tabla `notifications`: se inserta en PENDING,
    se llama al transporte del canal y se actualiza a SENT o FAILED.
    """

    def __init__(
        self,
        settings: Settings,
        whatsapp: Optional[WhatsAppTransport] = None,
        email: Optional[EmailTransport] = None,
    ):
        self.settings = settings
        self.whatsapp = whatsapp or WhatsAppTransport(settings)
        self.email = email or EmailTransport(settings)

    def channel_status(self) -> dict:
        return {"whatsapp": self.whatsapp.enabled, "email": self.email.enabled, "sms": False}

    def test_configuration(self) -> dict:
        status = {}
        for name, enabled in self.channel_status().items():
            status[name] = {"available": enabled}
            if not enabled:
                status[name]["error"] = f"Faltan credenciales de {name.upper()}"
        return status

    @staticmethod
    def resolve_recipient(client: models.Client, channel: str) -> str:
        if channel == models.NotificationChannel.EMAIL.value:
            recipient = client.email
        else:
            recipient = client.phone
        if not recipient:
            raise CobranzaError(f"El cliente {client.legal_name} no tiene destinatario para {channel}")
        return recipient

    async def _send(self, channel: str, recipient: str, client: models.Client, message: str, subject: str) -> SendResult:
        if channel == models.NotificationChannel.WHATSAPP.value:
            return await self.whatsapp.send(recipient, f"{subject}\n\n{strip_html(message)}")
        if channel == models.NotificationChannel.EMAIL.value:
            html = email_layout(self.settings.company_name, client.legal_name, message)
            return await self.email.send(recipient, subject, html, strip_html(message))
        return SendResult(False, f"Canal {channel} no configurado")

    async def dispatch(
        self,
        db: AsyncSession,
        client: models.Client,
        message: str,
        channel: str,
        subject: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> models.Notification:
        recipient = self.resolve_recipient(client, channel)
        subject = subject or f"Recordatorio de pago - {self.settings.company_name}"

        notification = await crud.create_notification(
            db, client.id, channel, recipient, message, subject=subject, user_id=user_id
        )
        try:
            result = await self._send(channel, recipient, client, message, subject)
        except Exception as e:
            # El registro nunca queda en PENDING: cualquier error del transporte es un FAILED
            logger.error(f"❌ Error del transporte {channel} en notificación #{notification.id}: {e}")
            result = SendResult(False, str(e) or e.__class__.__name__)
        if not result.success:
            logger.warning(f"⚠️ Notificación #{notification.id} ({channel}) falló: {result.detail}")

        return await crud.finish_notification(db, notification, result.success, result.detail)

    async def dispatch_many(
        self,
        db: AsyncSession,
        items: List[Tuple[models.Client, str, str, Optional[str]]],
        user_id: Optional[int] = None,
    ) -> dict:
        """
        Envía (cliente, mensaje, canal, asunto) uno por uno.
        Un fallo no detiene el lote: se registra y se cuenta.
        """
        summary = {"sent": 0, "failed": 0, "skipped": 0, "total": len(items), "results": []}
        delay = self.settings.notification_send_delay_seconds

        for index, (client, message, channel, subject) in enumerate(items):
            # Tras un rollback la sesión expira los objetos: se recargan antes de usarlos
            if sa_inspect(client).expired_attributes:
                await db.refresh(client)
            client_id, client_name = client.id, client.legal_name
            try:
                notification = await self.dispatch(db, client, message, channel, subject, user_id)
            except Exception as e:
                await db.rollback()
                logger.error(f"❌ Error notificando a {client_name}: {e}")
                summary["failed"] += 1
                summary["results"].append({
                    "client_id": client_id, "client": client_name, "status": "FAILED",
                    "channel": channel, "reason": str(e),
                })
                continue

            sent = notification.status == models.NotificationStatus.SENT.value
            summary["sent" if sent else "failed"] += 1
            summary["results"].append({
                "client_id": client_id, "client": client_name, "status": notification.status,
                "channel": channel, "recipient": notification.recipient,
                "reason": None if sent else notification.detail,
            })

            if delay > 0 and index < len(items) - 1:
                await asyncio.sleep(delay)

        return summary

    def pick_channel(self, client: models.Client) -> Optional[str]:
        """WhatsApp si está habilitado y hay teléfono; si no, email."""
        if self.whatsapp.enabled and client.phone:
            return models.NotificationChannel.WHATSAPP.value
        if self.email.enabled and client.email:
            return models.NotificationChannel.EMAIL.value
        return None

    async def send_reminders(
        self, db: AsyncSession, reference: Optional[date] = None, user_id: Optional[int] = None
    ) -> dict:
        """
        Campaña de recordatorios para clientes B y C con deuda pendiente.
        Omite a quienes ya recibieron un mensaje dentro de la frecuencia configurada.
        """
        reference = reference or date.today()
        logger.info("📨 Iniciando campaña de recordatorios...")

        items = []
        skipped = []
        for entry in await read_ledger(db, reference):
            client = entry.client
            code = client.classification.code if client.classification else None
            if code not in REMINDER_CLASSIFICATIONS or entry.debt.outstanding <= 0:
                continue

            if await crud.was_notified_recently(db, client.id, self.settings.reminder_frequency_days):
                skipped.append({"client_id": client.id, "client": client.legal_name, "status": "SKIPPED",
                                "reason": "Notificado recientemente"})
                continue

            template = await crud.get_template_by_classification(db, client.classification_id)
            body = template.body if template else default_template(code)
            message = render_template(body, client, entry.debt.outstanding, reference, reference)

            # Sin canal disponible: dispatch falla y queda como FAILED en el resumen
            channel = self.pick_channel(client) or models.NotificationChannel.WHATSAPP.value
            items.append((client, message, channel, "Recordatorio de pago"))

        summary = await self.dispatch_many(db, items, user_id=user_id)
        summary["skipped"] = len(skipped)
        summary["total"] += len(skipped)
        summary["results"].extend(skipped)

        logger.info(f"✅ Recordatorios: {summary['sent']} enviados, {summary['failed']} fallidos, {summary['skipped']} omitidos")
        return summary
