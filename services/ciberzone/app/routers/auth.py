import os

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from ..logging_conf import configure_logging
from ..models import Usuario, Rol
from ..schemas import LoginIn, TokenOut, UsuarioCreate
from ..security import create_access_token, hash_password, verify_password
from ..utils.validators import validate_registro


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)

router = APIRouter(prefix="/api/auth", tags=["auth"])

CREDENCIALES_INCORRECTAS = "Usuario o contraseña incorrectos."


def _token_out(user: Usuario) -> TokenOut:
    return TokenOut(token=create_access_token(user), username=user.username, rol=user.rol)


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = (
        db.query(Usuario)
        .filter(Usuario.username == payload.username, Usuario.activo.is_(True))
        .first()
    )
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("login fallido", extra={"username": payload.username})
        raise HTTPException(status_code=401, detail=CREDENCIALES_INCORRECTAS)
    return _token_out(user)


@router.post("/register", response_model=TokenOut)
def register(payload: UsuarioCreate, db: Session = Depends(get_db)):
    username = (payload.username or "").strip()
    password = payload.password or ""

    error = validate_registro(username, password)
    if error:
        raise HTTPException(status_code=400, detail=error)

    exists = db.query(Usuario).filter(func.lower(Usuario.username) == username.lower()).first()
    if exists:
        raise HTTPException(status_code=409, detail="Ese nombre de usuario ya existe.")

    user = Usuario(
        username=username,
        password_hash=hash_password(password),
        rol=Rol.user.value,
        activo=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ese nombre de usuario ya existe.")
    db.refresh(user)
    logger.info("usuario registrado", extra={"username": user.username})
    return _token_out(user)
