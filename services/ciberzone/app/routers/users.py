import os

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..logging_conf import configure_logging
from ..models import Usuario, Rol
from ..schemas import UsuarioCreate, UsuarioOut, usuario_out
from ..security import CurrentUser, hash_password, require_admin
from ..utils.validators import is_blank


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UsuarioOut])
def listar_usuarios(db: Session = Depends(get_db), _: CurrentUser = Depends(require_admin)):
    usuarios = db.query(Usuario).order_by(Usuario.creado_en.desc(), Usuario.id.desc()).all()
    return [usuario_out(u) for u in usuarios]


@router.post("", response_model=UsuarioOut)
def crear_usuario(payload: UsuarioCreate, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    if is_blank(payload.username) or is_blank(payload.password):
        raise HTTPException(status_code=400, detail="Usuario y contraseña son requeridos.")

    username = payload.username.strip()
    if db.query(Usuario).filter(Usuario.username == username).first():
        raise HTTPException(status_code=409, detail="Ese nombre de usuario ya existe.")

    user = Usuario(username=username, password_hash=hash_password(payload.password), rol=Rol.user.value)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ese nombre de usuario ya existe.")
    db.refresh(user)
    logger.info("usuario creado", extra={"username": user.username, "por": admin.username})
    return usuario_out(user)


@router.delete("/{id}", status_code=204)
def eliminar_usuario(id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    user = db.get(Usuario, id)
    if not user:
        raise HTTPException(status_code=404)
    if user.rol == Rol.admin.value:
        raise HTTPException(status_code=400, detail="No puedes eliminar un admin.")
    db.delete(user)
    db.commit()
    logger.info("usuario eliminado", extra={"usuario_id": id, "por": admin.username})
    return Response(status_code=204)
