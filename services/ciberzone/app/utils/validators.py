from typing import Optional

from ..models import EstadoPedido


USERNAME_MIN = 3
PASSWORD_MIN = 4


def validate_estado(estado: Optional[str]) -> bool:
    return estado in {e.value for e in EstadoPedido}


def validate_registro(username: str, password: str) -> Optional[str]:
    """Devuelve el mensaje de error o None si los datos son aceptables."""
    if len(username) < USERNAME_MIN:
        return f"El usuario debe tener al menos {USERNAME_MIN} caracteres."
    if len(password) < PASSWORD_MIN:
        return f"La contraseña debe tener al menos {PASSWORD_MIN} caracteres."
    return None


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()
