from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Rol(str, enum.Enum):
    admin = "admin"
    user = "user"


class EstadoPedido(str, enum.Enum):
    pendiente = "Pendiente"
    completado = "Completado"
    cancelado = "Cancelado"


class Usuario(Base):
    __tablename__ = "usuarios"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    rol: Mapped[str] = mapped_column(String(20), nullable=False, default=Rol.user.value, server_default=Rol.user.value)
    creado_en: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)

    pedidos = relationship("Pedido", back_populates="usuario")


class Pedido(Base):
    __tablename__ = "pedidos"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)
    telefono: Mapped[str] = mapped_column(String(30), nullable=False)
    servicio: Mapped[str] = mapped_column(String(200), nullable=False)
    detalles: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fecha_pref: Mapped[str | None] = mapped_column(Text, nullable=True)
    estado: Mapped[str] = mapped_column(
        String(30), nullable=False, default=EstadoPedido.pendiente.value, server_default=EstadoPedido.pendiente.value
    )
    origen: Mapped[str] = mapped_column(String(50), nullable=False, default="Web", server_default="Web")
    creado_en: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    # JSON libre: archivos del cliente y negociacion admin/usuario
    archivos_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    usuario_id: Mapped[int | None] = mapped_column(
        ForeignKey("usuarios.id", ondelete="SET NULL"), nullable=True, index=True
    )
    usuario = relationship("Usuario", back_populates="pedidos")
