from datetime import datetime
from typing import Optional

from pydantic import BaseModel


# AUTH
class LoginIn(BaseModel):
    username: str = ""
    password: str = ""


class TokenOut(BaseModel):
    token: str
    username: str
    rol: str


# USUARIOS
class UsuarioCreate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UsuarioOut(BaseModel):
    id: int
    username: str
    rol: str
    creadoEn: datetime
    activo: bool


# PEDIDOS
class PedidoCreate(BaseModel):
    nombre: Optional[str] = None
    telefono: Optional[str] = None
    servicio: Optional[str] = None
    detalles: Optional[str] = None
    fechaPref: Optional[str] = None
    origen: Optional[str] = None
    archivosJson: Optional[str] = None


class EstadoIn(BaseModel):
    estado: Optional[str] = None


class AdminDataIn(BaseModel):
    precio: Optional[str] = None
    comentario: Optional[str] = None


class UserResponseIn(BaseModel):
    decision: Optional[str] = None
    comentario: Optional[str] = None


class PedidoOut(BaseModel):
    id: int
    nombre: str
    telefono: str
    servicio: str
    detalles: str
    fechaPref: Optional[str]
    estado: str
    origen: str
    creadoEn: datetime
    archivosJson: Optional[str]
    usuarioId: Optional[int]


class ArchivoGuardado(BaseModel):
    name: str
    size: int
    contentType: Optional[str] = None
    url: str
    uploadedAt: Optional[str] = None


def pedido_out(p) -> PedidoOut:
    return PedidoOut(
        id=p.id,
        nombre=p.nombre,
        telefono=p.telefono,
        servicio=p.servicio,
        detalles=p.detalles or "",
        fechaPref=p.fecha_pref,
        estado=p.estado,
        origen=p.origen,
        creadoEn=p.creado_en,
        archivosJson=p.archivos_json,
        usuarioId=p.usuario_id,
    )


def usuario_out(u) -> UsuarioOut:
    return UsuarioOut(id=u.id, username=u.username, rol=u.rol, creadoEn=u.creado_en, activo=u.activo)
