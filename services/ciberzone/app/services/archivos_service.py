import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence
from uuid import uuid4

import aiofiles
from fastapi import HTTPException, UploadFile
from fastapi.datastructures import Headers
from fastapi.responses import JSONResponse
from opentelemetry import trace

from ..logging_conf import configure_logging
from ..metrics import ARCHIVOS_SUBIDOS
from ..schemas import ArchivoGuardado
from ..utils.metadata import iso_utc


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)
tracer = trace.get_tracer(__name__)

MAX_FILE_BYTES = 50 * 1024 * 1024
MAX_REQUEST_BYTES = 262_144_000  # 250 MB por solicitud
CHUNK_BYTES = 1024 * 1024

PEDIDOS_SUBDIR = "pedidos"
ADMIN_SUBDIR = "pedidos/admin"


def wwwroot() -> Path:
    default = Path(__file__).resolve().parents[2] / "wwwroot"
    return Path(os.getenv("WWWROOT") or default)


def uploads_root() -> Path:
    return Path(os.getenv("UPLOADS_DIR") or wwwroot() / "uploads")


SOLICITUD_GRANDE = "La solicitud excede 250 MB."


class LimiteSolicitudMiddleware:
    """Rechaza con 413 los cuerpos mayores a ``MAX_REQUEST_BYTES``.

    El ``Content-Length`` se revisa de entrada; los cuerpos sin ese header
    (chunked) se cuentan mientras la app los lee.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limite = MAX_REQUEST_BYTES
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limite:
            logger.info("solicitud rechazada por tamano", extra={"size": int(length), "path": scope.get("path")})
            response = JSONResponse(status_code=413, content={"detail": SOLICITUD_GRANDE})
            await response(scope, receive, send)
            return

        recibidos = 0

        async def receive_limitado():
            nonlocal recibidos
            message = await receive()
            if message["type"] == "http.request":
                recibidos += len(message.get("body", b""))
                if recibidos > limite:
                    logger.info("solicitud rechazada por tamano", extra={"size": recibidos, "path": scope.get("path")})
                    raise HTTPException(status_code=413, detail=SOLICITUD_GRANDE)
            return message

        await self.app(scope, receive_limitado, send)


def file_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    current = upload.file.tell()
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(current)
    return size


def nombre_unico(filename: str | None) -> str:
    ext = Path(filename or "").suffix
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")[:-3]
    return f"{stamp}_{uuid4().hex}{ext}"


def validar_tamanos(archivos: Sequence[UploadFile]) -> List[UploadFile]:
    """Revisa todo el lote antes de escribir; devuelve los archivos no vacios."""
    validos: List[UploadFile] = []
    for archivo in archivos:
        size = file_size(archivo)
        if size <= 0:
            continue
        if size > MAX_FILE_BYTES:
            logger.info("archivo rechazado por tamano", extra={"archivo": archivo.filename, "size": size})
            raise HTTPException(status_code=400, detail=f"El archivo '{archivo.filename}' excede 50 MB.")
        validos.append(archivo)
    return validos


async def guardar_archivos(archivos: Sequence[UploadFile], subdir: str = PEDIDOS_SUBDIR,
                           con_fecha: bool = False) -> List[Dict[str, Any]]:
    """Copia cada archivo a ``<uploads>/<subdir>`` y devuelve sus descriptores.

    Los descriptores tienen ``name``, ``size``, ``contentType`` y ``url``;
    con ``con_fecha`` se agrega ``uploadedAt``.
    """
    validos = validar_tamanos(archivos)
    if not validos:
        return []

    destino = uploads_root() / subdir
    destino.mkdir(parents=True, exist_ok=True)
    tipo = "admin" if subdir == ADMIN_SUBDIR else "cliente"

    guardados: List[Dict[str, Any]] = []
    with tracer.start_as_current_span("uploads.guardar") as span:
        span.set_attribute("batch.size", len(validos))
        for archivo in validos:
            unique = nombre_unico(archivo.filename)
            await archivo.seek(0)
            written = 0
            async with aiofiles.open(destino / unique, "wb") as out:
                while True:
                    chunk = await archivo.read(CHUNK_BYTES)
                    if not chunk:
                        break
                    await out.write(chunk)
                    written += len(chunk)

            descriptor = ArchivoGuardado(
                name=archivo.filename or unique,
                size=written,
                contentType=archivo.content_type,
                url=f"/uploads/{subdir}/{unique}",
            )
            if con_fecha:
                descriptor.uploadedAt = iso_utc()
            guardados.append(descriptor.model_dump(exclude_unset=True))
            ARCHIVOS_SUBIDOS.labels(tipo=tipo).inc()
            logger.info("archivo guardado", extra={"archivo": archivo.filename, "destino": unique, "size": written})
    return guardados
