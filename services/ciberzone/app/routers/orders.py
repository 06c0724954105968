import json
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..logging_conf import configure_logging
from ..metrics import PEDIDOS_CREADOS
from ..models import Pedido
from ..schemas import AdminDataIn, EstadoIn, PedidoCreate, PedidoOut, UserResponseIn, pedido_out
from ..security import CurrentUser, get_current_user, get_optional_user, require_admin
from ..services.archivos_service import ADMIN_SUBDIR, PEDIDOS_SUBDIR, guardar_archivos
from ..utils import metadata
from ..utils.validators import is_blank, validate_estado


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _get_pedido(db: Session, id: int) -> Pedido:
    pedido = db.get(Pedido, id)
    if not pedido:
        raise HTTPException(status_code=404)
    return pedido


def _guardar(db: Session, pedido: Pedido) -> PedidoOut:
    db.commit()
    db.refresh(pedido)
    return pedido_out(pedido)


@router.get("", response_model=list[PedidoOut])
def listar_pedidos(
    estado: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    q = db.query(Pedido)
    if estado and estado.strip() and estado != "all":
        q = q.filter(Pedido.estado == estado)
    if search and search.strip():
        s = search.lower()
        q = q.filter(
            or_(
                func.lower(Pedido.nombre).contains(s, autoescape=True),
                Pedido.telefono.contains(s, autoescape=True),
                func.lower(Pedido.servicio).contains(s, autoescape=True),
            )
        )
    pedidos = q.order_by(Pedido.creado_en.desc(), Pedido.id.desc()).all()
    return [pedido_out(p) for p in pedidos]


@router.get("/mis-pedidos", response_model=list[PedidoOut])
def mis_pedidos(db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    if user.id is None:
        raise HTTPException(status_code=401, detail="No autenticado")
    pedidos = (
        db.query(Pedido)
        .filter(Pedido.usuario_id == user.id)
        .order_by(Pedido.creado_en.desc(), Pedido.id.desc())
        .all()
    )
    return [pedido_out(p) for p in pedidos]


def crear_pedido_interno(db: Session, data: PedidoCreate, user: CurrentUser | None) -> PedidoOut:
    if is_blank(data.nombre) or is_blank(data.telefono):
        raise HTTPException(status_code=400, detail="Nombre y telefono son requeridos.")

    pedido = Pedido(
        nombre=data.nombre.strip(),
        telefono=data.telefono.strip(),
        servicio="Otro" if is_blank(data.servicio) else data.servicio.strip(),
        detalles=(data.detalles or "").strip(),
        fecha_pref=data.fechaPref,
        origen=data.origen or "Web",
        archivos_json=data.archivosJson,
        usuario_id=user.id if user else None,
    )
    db.add(pedido)
    out = _guardar(db, pedido)
    PEDIDOS_CREADOS.labels(origen=pedido.origen).inc()
    logger.info("pedido creado", extra={"pedido_id": pedido.id, "usuario_id": pedido.usuario_id})
    return out


def es_multipart(content_type: Optional[str]) -> bool:
    return (content_type or "").strip().lower().startswith("multipart/form-data")


def _form_str(form, key: str) -> Optional[str]:
    value = form.get(key)
    return value if isinstance(value, str) else None


@router.post("", response_model=PedidoOut)
async def crear_pedido(
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser | None = Depends(get_optional_user),
):
    """Acepta JSON o multipart/form-data con archivos en ``archivos``."""
    if es_multipart(request.headers.get("content-type")):
        form = await request.form()
        data = PedidoCreate(
            nombre=_form_str(form, "nombre"),
            telefono=_form_str(form, "telefono"),
            servicio=_form_str(form, "servicio"),
            detalles=_form_str(form, "detalles"),
            fechaPref=_form_str(form, "fechaPref"),
            origen=_form_str(form, "origen"),
        )
        if is_blank(data.nombre) or is_blank(data.telefono):
            raise HTTPException(status_code=400, detail="Nombre y telefono son requeridos.")
        archivos = [a for a in form.getlist("archivos") if not isinstance(a, str)]
        guardados = await guardar_archivos(archivos, PEDIDOS_SUBDIR)
        if guardados:
            data.archivosJson = json.dumps(guardados, ensure_ascii=False)
        return crear_pedido_interno(db, data, user)

    try:
        body = await request.json()
    except ValueError:
        # JSON mal formado o bytes que no son UTF-8
        raise HTTPException(status_code=400, detail="JSON invalido.")
    try:
        data = PedidoCreate.model_validate(body)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())
    return crear_pedido_interno(db, data, user)


@router.patch("/{id}/status", response_model=PedidoOut)
def actualizar_estado(id: int, payload: EstadoIn, db: Session = Depends(get_db),
                      _: CurrentUser = Depends(require_admin)):
    pedido = _get_pedido(db, id)
    if not validate_estado(payload.estado):
        raise HTTPException(status_code=400, detail="Estado invalido.")
    pedido.estado = payload.estado
    return _guardar(db, pedido)


@router.delete("/{id}", status_code=204)
def eliminar_pedido(id: int, db: Session = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    pedido = _get_pedido(db, id)
    db.delete(pedido)
    db.commit()
    logger.info("pedido eliminado", extra={"pedido_id": id})
    return Response(status_code=204)


@router.patch("/{id}/admin", response_model=PedidoOut)
def actualizar_datos_admin(id: int, payload: AdminDataIn, db: Session = Depends(get_db),
                           _: CurrentUser = Depends(require_admin)):
    pedido = _get_pedido(db, id)
    meta = metadata.cargar_meta(pedido.archivos_json)
    metadata.aplicar_datos_admin(meta, payload.precio, payload.comentario)
    pedido.archivos_json = metadata.dump_meta(meta)
    return _guardar(db, pedido)


@router.post("/{id}/admin-files", response_model=PedidoOut)
async def subir_archivos_admin(
    id: int,
    archivos: Optional[list[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    _: CurrentUser = Depends(require_admin),
):
    pedido = _get_pedido(db, id)
    if not archivos:
        raise HTTPException(status_code=400, detail="Debes adjuntar al menos un archivo.")

    guardados = await guardar_archivos(archivos, ADMIN_SUBDIR, con_fecha=True)
    meta = metadata.cargar_meta(pedido.archivos_json)
    metadata.agregar_archivos_admin(meta, guardados)
    pedido.archivos_json = metadata.dump_meta(meta)
    return _guardar(db, pedido)


@router.patch("/{id}/user-response", response_model=PedidoOut)
def actualizar_respuesta_usuario(id: int, payload: UserResponseIn, db: Session = Depends(get_db),
                                 user: CurrentUser = Depends(get_current_user)):
    pedido = _get_pedido(db, id)
    if not user.es_admin and (user.id is None or pedido.usuario_id != user.id):
        raise HTTPException(status_code=403, detail="forbidden")

    if not metadata.decision_valida(payload.decision):
        raise HTTPException(status_code=400, detail="Decision invalida.")

    meta = metadata.cargar_meta(pedido.archivos_json)
    metadata.aplicar_respuesta_usuario(meta, payload.decision, payload.comentario)
    pedido.archivos_json = metadata.dump_meta(meta)
    return _guardar(db, pedido)
