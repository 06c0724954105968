import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import StaticPool
from tenacity import Retrying, stop_after_attempt, wait_incrementing, RetryError

from .logging_conf import configure_logging
from .utils.connection import resolve_database_url


service_name = os.getenv("SERVICE_NAME", "ciberzone")
logger = configure_logging(service_name)

MIGRATION_ATTEMPTS = 5
MIGRATION_WAIT_SECONDS = 3
STATEMENT_TIMEOUT_MS = 120_000


def _build_database_url() -> str:
    return resolve_database_url(os.getenv("DEFAULT_CONNECTION"), os.getenv("DATABASE_URL"))


DATABASE_URL = _build_database_url()


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    parsed = make_url(url)
    connect_args = {}
    if parsed.get_backend_name() == "postgresql" and "options" not in parsed.query:
        connect_args["options"] = f"-c statement_timeout={STATEMENT_TIMEOUT_MS}"
    if parsed.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    kwargs = {}
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        # una sola conexion compartida para que la base en memoria persista
        kwargs["poolclass"] = StaticPool
    eng = create_engine(url, pool_pre_ping=True, connect_args=connect_args, **kwargs)
    if parsed.get_backend_name() == "sqlite":
        event.listen(eng, "connect", _sqlite_foreign_keys)
    return eng


def _sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignora ON DELETE SET NULL si no se activa por conexion
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def describe_target(url: str) -> dict:
    parsed = make_url(url)
    return {
        "host": parsed.host,
        "port": parsed.port,
        "database": parsed.database,
        "username": parsed.username,
    }


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def migrate(bind: Engine | None = None) -> None:
    from . import models  # noqa: F401 - registra las tablas en Base.metadata
    Base.metadata.create_all(bind=bind or engine)


def init_db(bind: Engine | None = None, attempts: int = MIGRATION_ATTEMPTS,
            wait_seconds: float = MIGRATION_WAIT_SECONDS) -> bool:
    """Crea el esquema reintentando con espera lineal (3s, 6s, 9s...).

    Devuelve False si todos los intentos fallan; el servicio sigue levantado
    sin esquema confirmado.
    """
    bind = bind or engine

    def _log_retry(retry_state):
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "db migrate failed, retrying",
            extra={"attempt": retry_state.attempt_number, "max_attempts": attempts, "delay_s": delay},
        )

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=wait_seconds, increment=wait_seconds),
        before_sleep=_log_retry,
    )
    try:
        retrying(migrate, bind)
    except RetryError as exc:
        logger.error(
            "db migrate failed definitively; running without migration",
            extra={"error": str(exc.last_attempt.exception())},
        )
        return False
    logger.info("db migrate ok", extra=describe_target(str(bind.url)))
    return True


def bootstrap_admin(db: Session, username: str | None = None, password: str | None = None) -> bool:
    """Crea el admin por defecto si no existe. Devuelve True si lo creo."""
    from .models import Usuario, Rol
    from .security import hash_password

    username = username or os.getenv("ADMIN_USERNAME", "ciberzone")
    password = password or os.getenv("ADMIN_PASSWORD", "Admin2025#")

    if db.query(Usuario).filter(Usuario.username == username).first():
        return False
    db.add(Usuario(
        username=username,
        password_hash=hash_password(password),
        rol=Rol.admin.value,
        activo=True,
    ))
    db.commit()
    logger.info("default admin user created", extra={"username": username})
    return True
