"""Tests for the RUC / DNI / exchange-rate lookups."""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from app.services.registry import DecolectaClient, fetch_and_store_rate


def _registry(settings, handler):
    calls = []

    def recording(request):
        calls.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return DecolectaClient(settings, http), calls


@pytest.mark.asyncio
@pytest.mark.parametrize("number", [None, "", "2012345678", "201234567890", "20A23456789"])
async def test_malformed_ruc_makes_no_call(settings, number):
    registry, calls = _registry(settings, lambda r: httpx.Response(200, json={}))

    assert await registry.lookup_ruc(number) is None
    assert calls == []


@pytest.mark.asyncio
async def test_malformed_dni_makes_no_call(settings):
    registry, calls = _registry(settings, lambda r: httpx.Response(200, json={}))

    assert await registry.lookup_dni("1234567") is None
    assert calls == []


@pytest.mark.asyncio
async def test_missing_api_key_returns_none(settings):
    settings.decolecta_api_key = None
    registry, calls = _registry(settings, lambda r: httpx.Response(200, json={}))

    assert await registry.lookup_ruc("20123456789") is None
    assert calls == []


@pytest.mark.asyncio
async def test_ruc_lookup_is_normalized(settings):
    def handler(request):
        assert request.url.path.endswith("/sunat/ruc")
        assert request.url.params["numero"] == "20123456789"
        assert request.headers["Authorization"] == "Bearer test-key"
        return httpx.Response(200, json={
            "razon_social": "EMPRESA DEMO S.A.C.",
            "numero_documento": "20123456789",
            "estado": "ACTIVO",
            "condicion": "HABIDO",
            "direccion": "AV. LOS OLIVOS 123",
            "distrito": "LIMA",
        })

    registry, _ = _registry(settings, handler)
    info = await registry.lookup_ruc("20123456789")

    assert info["legal_name"] == "EMPRESA DEMO S.A.C."
    assert info["status"] == "ACTIVO"
    assert info["condition"] == "HABIDO"
    assert info["province"] is None


@pytest.mark.asyncio
async def test_dni_lookup_builds_full_name(settings):
    registry, _ = _registry(settings, lambda r: httpx.Response(200, json={
        "first_name": "ANA MARIA",
        "first_last_name": "QUISPE",
        "second_last_name": "ROJAS",
        "document_number": "12345678",
    }))

    info = await registry.lookup_dni("12345678")

    assert info["full_name"] == "ANA MARIA QUISPE ROJAS"
    assert info["paternal_surname"] == "QUISPE"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(404, json={"message": "no encontrado"}),
    httpx.Response(500, text="boom"),
    httpx.Response(200, text="<html>no es json</html>"),
    httpx.Response(200, json={"razon_social": ""}),
])
async def test_bad_responses_become_none(settings, response):
    registry, _ = _registry(settings, lambda r: response)
    assert await registry.lookup_ruc("20123456789") is None


@pytest.mark.asyncio
async def test_network_error_becomes_none(settings):
    def handler(request):
        raise httpx.ConnectError("sin red", request=request)

    registry, _ = _registry(settings, handler)
    assert await registry.exchange_rate() is None


@pytest.mark.asyncio
async def test_exchange_rate_for_a_date(settings):
    def handler(request):
        assert request.url.params["date"] == "2024-04-01"
        return httpx.Response(200, json={
            "buy_price": "3.712", "sell_price": "3.720",
            "base_currency": "USD", "quote_currency": "PEN", "date": "2024-04-01",
        })

    registry, _ = _registry(settings, handler)
    rate = await registry.exchange_rate(date(2024, 4, 1))

    assert rate["buy_price"] == Decimal("3.712")
    assert rate["sell_price"] == Decimal("3.720")
    assert rate["rate_date"] == date(2024, 4, 1)


@pytest.mark.asyncio
async def test_monthly_rates_drop_malformed_rows(settings):
    registry, _ = _registry(settings, lambda r: httpx.Response(200, json=[
        {"buy_price": 3.70, "sell_price": 3.71, "date": "2024-04-01"},
        {"buy_price": 3.72},
        {"buy_price": 3.73, "sell_price": 3.74, "date": "2024-04-02"},
    ]))

    rates = await registry.monthly_exchange_rates(4, 2024)

    assert [r["rate_date"] for r in rates] == [date(2024, 4, 1), date(2024, 4, 2)]


@pytest.mark.asyncio
async def test_monthly_rates_reject_invalid_month(settings):
    registry, calls = _registry(settings, lambda r: httpx.Response(200, json=[]))
    assert await registry.monthly_exchange_rates(13, 2024) is None
    assert calls == []


@pytest.mark.asyncio
async def test_fetch_and_store_rate_persists(db, settings):
    registry, _ = _registry(settings, lambda r: httpx.Response(200, json={
        "buy_price": "3.70", "sell_price": "3.75", "date": "2024-04-01",
    }))

    stored = await fetch_and_store_rate(db, registry)

    assert stored.id is not None
    assert stored.sell_price == Decimal("3.75")
    assert stored.source == "SUNAT"


@pytest.mark.asyncio
async def test_fetch_and_store_rate_tolerates_failure(db, settings):
    registry, _ = _registry(settings, lambda r: httpx.Response(503))
    assert await fetch_and_store_rate(db, registry) is None
