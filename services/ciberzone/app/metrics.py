from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator


PEDIDOS_CREADOS = Counter(
    "ciberzone_pedidos_creados",
    "Pedidos creados por origen",
    ["origen"],
)

ARCHIVOS_SUBIDOS = Counter(
    "ciberzone_archivos_subidos",
    "Archivos guardados en el directorio de uploads",
    ["tipo"],
)


def setup_metrics(app: FastAPI) -> None:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")
