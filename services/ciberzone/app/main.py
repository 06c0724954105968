import os
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

from .logging_conf import configure_logging
from .metrics import setup_metrics
from .db import DATABASE_URL, SessionLocal, bootstrap_admin, describe_target, init_db
from .routers import auth as auth_router
from .routers import orders as orders_router
from .routers import users as users_router
from .services.archivos_service import LimiteSolicitudMiddleware, uploads_root, wwwroot


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)


def setup_tracing():
    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not otlp_endpoint:
        return
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    exporter = OTLPSpanExporter(endpoint=otlp_endpoint.rstrip("/") + "/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


app = FastAPI(
    title="CiberZone API",
    version="1.0.0",
    description="API para CiberZone - Cafe Internet Guatemala",
)

# Sin cookies: el token viaja en el header Authorization
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LimiteSolicitudMiddleware)


@app.on_event("startup")
async def on_startup():
    setup_tracing()
    logger.info("db target", extra=describe_target(DATABASE_URL))
    if not init_db():
        logger.warning("running without db migration; check PostgreSQL credentials/connection")
        return
    db = SessionLocal()
    try:
        bootstrap_admin(db)
    except Exception as e:
        logger.warning("admin bootstrap skipped", extra={"error": str(e)})
    finally:
        db.close()


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    cid = request.headers.get("X-Correlation-Id") or request.headers.get("X-Request-Id") or "anon"
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("unhandled error", extra={"cid": cid, "service": service_name})
        return JSONResponse(status_code=500, content={"detail": "internal error"})
    response.headers["X-Correlation-Id"] = cid
    return response


@app.get("/api/health")
def health():
    return {"status": "ok", "utc": datetime.now(timezone.utc).isoformat()}


setup_metrics(app)
app.include_router(auth_router.router)
app.include_router(orders_router.router)
app.include_router(users_router.router)

uploads_dir = uploads_root()
uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=uploads_dir), name="uploads")


@app.get("/{full_path:path}", include_in_schema=False)
def spa_fallback(full_path: str):
    """Sirve el front-end; cualquier ruta que no sea de la API cae en index.html."""
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=404)
    root = wwwroot().resolve()
    if full_path:
        candidate = (root / full_path).resolve()
        if candidate.is_file() and candidate.is_relative_to(root):
            return FileResponse(candidate)
    index = root / "index.html"
    if not index.is_file():
        raise HTTPException(status_code=404)
    return FileResponse(index)
