from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from contextlib import asynccontextmanager
import logging

# Scheduler
from apscheduler.schedulers.asyncio import AsyncIOScheduler

# Imports Locales
from . import models
from .config import get_settings
from .database import engine, AsyncSessionLocal
from .exceptions import CobranzaError
from .seed import seed_defaults
from .services.notifications import NotificationDispatcher
from .services.process import run_monthly_process
from .services.registry import DecolectaClient, fetch_and_store_rate
from .services.storage import ProofStorage
from .routers import (
    auth, billing, catalogs, classification, clients, commitments,
    lookups, notifications, payments, process, receipts, reports, sunat_schedule,
    templates, users,
)

settings = get_settings()

# Logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("cobranza-service")


# --- SCHEDULER (Segundo Plano) ---
async def run_exchange_rate_job(app: FastAPI):
    """Tarea programada para actualizar el tipo de cambio SUNAT."""
    logger.info("⏰ [SCHEDULER] Iniciando tarea de tipo de cambio...")
    try:
        async with AsyncSessionLocal() as db:
            await fetch_and_store_rate(db, app.state.registry)
    except Exception as e:
        logger.error(f"❌ [SCHEDULER] Falló la tarea: {e}")


async def run_monthly_billing_job(app: FastAPI):
    """Tarea programada del proceso automático mensual."""
    logger.info("⏰ [SCHEDULER] Iniciando proceso automático mensual...")
    try:
        async with AsyncSessionLocal() as db:
            await run_monthly_process(db, app.state.dispatcher, settings, trigger="SCHEDULED")
    except Exception as e:
        logger.error(f"❌ [SCHEDULER] Falló el proceso automático: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1. Crear tablas y datos iniciales
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
    async with AsyncSessionLocal() as db:
        await seed_defaults(db, settings)

    # 2. Colaboradores externos (una sola instancia por proceso)
    app.state.dispatcher = NotificationDispatcher(settings)
    app.state.registry = DecolectaClient(settings)
    app.state.storage = ProofStorage(settings)
    logger.info(f"📡 Canales disponibles: {app.state.dispatcher.channel_status()}")

    # 3. Iniciar el Scheduler
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(run_exchange_rate_job, "interval", hours=settings.exchange_rate_refresh_hours, args=[app])
        scheduler.add_job(run_exchange_rate_job, args=[app])  # Ejecutar ya al inicio
        if settings.auto_billing_enabled:
            scheduler.add_job(
                run_monthly_billing_job, "cron",
                day=settings.billing_day, hour=settings.billing_hour, args=[app],
            )
        scheduler.start()
        logger.info("⏰ Scheduler iniciado.")

    yield

    # 4. Apagado
    if scheduler:
        scheduler.shutdown()
    await engine.dispose()


# --- Configuración de FastAPI ---
app = FastAPI(
    title="Cobranza Service",
    description="Clientes, pagos, facturación automática mensual, recordatorios y recibos.",
    version="1.0.0",
    root_path=settings.root_path,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- MANEJO DE ERRORES ---
@app.exception_handler(CobranzaError)
async def cobranza_error_handler(request: Request, exc: CobranzaError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Datos inválidos") if errors else "Datos inválidos"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Error no controlado en {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Error interno del servidor"})


# --- ROUTERS ---
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(clients.router)
app.include_router(payments.router)
app.include_router(billing.router)
app.include_router(classification.router)
app.include_router(commitments.router)
app.include_router(templates.router)
app.include_router(notifications.router)
app.include_router(receipts.router)
app.include_router(lookups.router)
app.include_router(catalogs.router)
app.include_router(process.router)
app.include_router(reports.router)
app.include_router(sunat_schedule.router)


@app.get("/health")
async def health_check():
    return {"success": True, "data": {"status": "ok", "service": settings.app_name}}
