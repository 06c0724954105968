import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from .models import Rol, Usuario


ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=7)
BCRYPT_MAX_BYTES = 72

bearer_scheme = HTTPBearer(auto_error=False)


def jwt_key() -> str:
    return os.getenv("JWT_KEY", "CiberZoneSecretKey2025!MuySegura")


def jwt_issuer() -> str:
    return os.getenv("JWT_ISSUER", "CiberZone")


def jwt_audience() -> str:
    return os.getenv("JWT_AUDIENCE", "CiberZoneApp")


class CurrentUser(BaseModel):
    id: Optional[int]
    username: str
    rol: str

    @property
    def es_admin(self) -> bool:
        return self.rol == Rol.admin.value


def _password_bytes(password: str) -> bytes:
    # bcrypt solo considera los primeros 72 bytes
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # hash corrupto o con formato desconocido
        return False


def create_access_token(user: Usuario) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "name": user.username,
        "role": user.rol,
        "iss": jwt_issuer(),
        "aud": jwt_audience(),
        "iat": int(now.timestamp()),
        "exp": int((now + TOKEN_TTL).timestamp()),
    }
    return jwt.encode(payload, jwt_key(), algorithm=ALGORITHM)


def decode_token(token: str) -> CurrentUser:
    try:
        claims = jwt.decode(
            token,
            jwt_key(),
            algorithms=[ALGORITHM],
            audience=jwt_audience(),
            issuer=jwt_issuer(),
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expirado")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalido")
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        user_id = None
    return CurrentUser(id=user_id, username=claims.get("name", ""), rol=claims.get("role", ""))


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")
    return decode_token(credentials.credentials)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentUser | None:
    """Para rutas publicas: un token ausente o invalido se trata como anonimo."""
    if credentials is None:
        return None
    try:
        return decode_token(credentials.credentials)
    except HTTPException:
        return None


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.es_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return user
