"""Helpers para el JSON libre guardado en ``pedidos.archivos_json``.

El blob empieza como una lista de archivos del cliente y va acumulando llaves
de la negociacion: ``adminPrecio``, ``adminComentario``, ``adminFiles``,
``userDecision``, ``userComentario`` y ``userRespondedAt``. Cada operacion
toca solo sus llaves y conserva el resto.
"""
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


ADMIN_PRECIO = "adminPrecio"
ADMIN_COMENTARIO = "adminComentario"
ADMIN_FILES = "adminFiles"
USER_DECISION = "userDecision"
USER_COMENTARIO = "userComentario"
USER_RESPONDED_AT = "userRespondedAt"
FILES = "files"

DECISIONES_VALIDAS = ("Aceptado", "No aceptado")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def iso_utc(moment: Optional[datetime] = None) -> str:
    return (moment or datetime.now(timezone.utc)).isoformat()


def cargar_meta(raw: Optional[str]) -> dict[str, Any]:
    parsed: Any = None
    if raw and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        return {FILES: parsed}
    return {FILES: []}


def dump_meta(meta: dict[str, Any]) -> str:
    return json.dumps(meta, ensure_ascii=False)


def aplicar_datos_admin(meta: dict[str, Any], precio: Optional[str], comentario: Optional[str]) -> dict[str, Any]:
    meta[ADMIN_PRECIO] = _blank_to_none(precio)
    meta[ADMIN_COMENTARIO] = _blank_to_none(comentario)
    return meta


def agregar_archivos_admin(meta: dict[str, Any], descriptores: Iterable[dict[str, Any]]) -> dict[str, Any]:
    actuales = meta.get(ADMIN_FILES)
    admin_files = list(actuales) if isinstance(actuales, list) else []
    admin_files.extend(descriptores)
    meta[ADMIN_FILES] = admin_files
    return meta


def decision_valida(decision: Optional[str]) -> bool:
    decision = (decision or "").strip()
    return not decision or decision in DECISIONES_VALIDAS


def aplicar_respuesta_usuario(meta: dict[str, Any], decision: Optional[str], comentario: Optional[str],
                              ahora: Optional[datetime] = None) -> dict[str, Any]:
    meta[USER_DECISION] = _blank_to_none(decision)
    meta[USER_COMENTARIO] = _blank_to_none(comentario)
    meta[USER_RESPONDED_AT] = iso_utc(ahora)
    return meta
