import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.config import Settings

logger = logging.getLogger(__name__)

RUC_LENGTH = 11
DNI_LENGTH = 8


def _valid_number(value: Optional[str], length: int) -> bool:
    return bool(value) and value.isdigit() and len(value) == length

def _parse_date(value: Any) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10]) if value else None
    except ValueError:
        return None


class DecolectaClient:
    """
    Cliente de la API de consultas (SUNAT / RENIEC / tipo de cambio).

    Cualquier problema (número mal formado, falta de API key, respuesta
    no 2xx, error de red o JSON ilegible) se traduce en `None`. Sin reintentos.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client

    async def _request(self, endpoint: str, params: dict) -> Optional[Any]:
        if not self.settings.decolecta_api_key:
            logger.warning("⚠️ DECOLECTA_API_KEY no está configurada")
            return None

        url = f"{self.settings.decolecta_base_url.rstrip('/')}{endpoint}"
        headers = {"Authorization": f"Bearer {self.settings.decolecta_api_key}"}
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, headers=headers, timeout=self.settings.http_timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                    resp = await client.get(url, params=params, headers=headers)

            if not resp.is_success:
                logger.warning(f"⚠️ Decolecta devolvió {resp.status_code} para {endpoint}")
                return None
            return resp.json()
        except httpx.HTTPError as e:
            logger.error(f"Error llamando a Decolecta: {e}")
            return None
        except ValueError as e:
            logger.error(f"Respuesta ilegible de Decolecta: {e}")
            return None

    async def lookup_ruc(self, ruc: Optional[str]) -> Optional[dict]:
        """Consulta un RUC (11 dígitos) en SUNAT."""
        if not _valid_number(ruc, RUC_LENGTH):
            return None
        data = await self._request("/sunat/ruc", {"numero": ruc})
        if not isinstance(data, dict) or not data.get("razon_social"):
            return None
        return {
            "ruc": data.get("numero_documento") or ruc,
            "legal_name": data["razon_social"],
            "status": data.get("estado"),
            "condition": data.get("condicion"),
            "address": data.get("direccion"),
            "district": data.get("distrito"),
            "province": data.get("provincia"),
            "department": data.get("departamento"),
        }

    async def lookup_dni(self, dni: Optional[str]) -> Optional[dict]:
        """Consulta un DNI (8 dígitos) en RENIEC."""
        if not _valid_number(dni, DNI_LENGTH):
            return None
        data = await self._request("/reniec/dni", {"numero": dni})
        if not isinstance(data, dict) or not data.get("first_name"):
            return None
        first = data.get("first_name", "")
        paternal = data.get("first_last_name", "")
        maternal = data.get("second_last_name", "")
        return {
            "dni": data.get("document_number") or dni,
            "first_names": first,
            "paternal_surname": paternal,
            "maternal_surname": maternal,
            "full_name": " ".join(p for p in (first, paternal, maternal) if p),
        }

    @staticmethod
    def _normalize_rate(data: Any) -> Optional[dict]:
        if not isinstance(data, dict):
            return None
        try:
            return {
                "buy_price": Decimal(str(data["buy_price"])),
                "sell_price": Decimal(str(data["sell_price"])),
                "base_currency": data.get("base_currency") or "USD",
                "quote_currency": data.get("quote_currency") or "PEN",
                "rate_date": _parse_date(data.get("date")),
            }
        except (KeyError, InvalidOperation):
            return None

    async def exchange_rate(self, on_date: Optional[date] = None) -> Optional[dict]:
        """Tipo de cambio SUNAT del día (o de la fecha indicada)."""
        params = {"date": on_date.isoformat()} if on_date else {}
        return self._normalize_rate(await self._request("/tipo-cambio/sunat", params))

    async def monthly_exchange_rates(self, month: int, year: int) -> Optional[List[dict]]:
        if not 1 <= month <= 12:
            return None
        data = await self._request("/tipo-cambio/sunat", {"month": month, "year": year})
        if not isinstance(data, list):
            return None
        rates = [self._normalize_rate(item) for item in data]
        return [r for r in rates if r is not None]


async def fetch_and_store_rate(db: AsyncSession, registry: DecolectaClient):
    """
    Consulta el tipo de cambio SUNAT y lo guarda.
    Lo ejecuta el Scheduler: si falla, solo se registra en el log.
    """
    logger.info("🔄 Iniciando actualización de tipo de cambio...")
    rate = await registry.exchange_rate()
    if rate is None:
        logger.warning("⚠️ No se pudo obtener el tipo de cambio.")
        return None

    try:
        stored = await crud.save_exchange_rate(db, rate["buy_price"], rate["sell_price"], rate["rate_date"])
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ Error guardando tipo de cambio: {e}")
        return None

    logger.info(f"✅ Tipo de cambio actualizado: compra {rate['buy_price']} / venta {rate['sell_price']}")
    return stored
