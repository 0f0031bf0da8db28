import asyncio
import logging
import secrets
import time
from typing import Optional

from app.config import Settings
from app.exceptions import CobranzaError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


def _get_s3_client(settings: Settings):
    """Create a boto3 S3 client for the proofs bucket."""
    import boto3

    return boto3.client(
        "s3",
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
    )


def validate_upload(content_type: Optional[str], size: int, max_bytes: int) -> str:
    """Valida tipo y tamaño del comprobante. Retorna la extensión a usar."""
    ext = ALLOWED_TYPES.get((content_type or "").lower())
    if ext is None:
        raise CobranzaError("Tipo de archivo no permitido. Solo se aceptan JPG, PNG o PDF")
    if size <= 0:
        raise CobranzaError("El archivo está vacío")
    if size > max_bytes:
        raise CobranzaError(f"El archivo supera el máximo de {max_bytes // (1024 * 1024)} MB")
    return ext


def build_key(folder: str, ext: str) -> str:
    """<carpeta>/<timestamp>-<aleatorio>.<ext>"""
    return f"{folder.strip('/')}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


class ProofStorage:
    """Sube comprobantes de pago al bucket S3 y devuelve su URL pública."""

    def __init__(self, settings: Settings, client=None):
        self.settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None or self.settings.storage_enabled

    def public_url(self, key: str) -> str:
        s = self.settings
        return f"https://{s.aws_s3_bucket_name}.s3.{s.aws_region}.amazonaws.com/{key}"

    async def upload(self, data: bytes, original_name: str, content_type: str, folder: str = "comprobantes") -> dict:
        ext = validate_upload(content_type, len(data), self.settings.upload_max_bytes)
        if not self.enabled:
            raise CobranzaError("El almacenamiento de archivos no está configurado")

        client = self._client or _get_s3_client(self.settings)
        key = build_key(folder, ext)
        await asyncio.to_thread(
            client.put_object,
            Bucket=self.settings.aws_s3_bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.info(f"📎 Comprobante subido: {key} ({len(data)} bytes)")

        return {
            "url": self.public_url(key),
            "file_name": key,
            "original_name": original_name,
            "size": len(data),
            "content_type": content_type,
        }
