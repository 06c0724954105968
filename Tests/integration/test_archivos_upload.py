import json

import pytest

from services.ciberzone.app.services import archivos_service


pytestmark = pytest.mark.integration

FORM = {"nombre": "Ana", "telefono": "5555", "servicio": "Impresion", "detalles": "2 copias"}


def _archivos_en(directorio):
    if not directorio.exists():
        return []
    return sorted(p.name for p in directorio.iterdir() if p.is_file())


def test_pedido_multipart_guarda_archivos(client, uploads_dir, make_user):
    user_id, headers = make_user("conarchivos")
    files = [
        ("archivos", ("tarea.docx", b"contenido docx", "application/vnd.openxmlformats")),
        ("archivos", ("foto.png", b"\x89PNG....", "image/png")),
        ("archivos", ("vacio.txt", b"", "text/plain")),
    ]
    r = client.post("/api/orders", data=FORM, files=files, headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["usuarioId"] == user_id
    assert body["detalles"] == "2 copias"

    guardados = json.loads(body["archivosJson"])
    assert [g["name"] for g in guardados] == ["tarea.docx", "foto.png"]
    assert guardados[0]["size"] == len(b"contenido docx")
    assert guardados[1]["contentType"] == "image/png"
    assert all(g["url"].startswith("/uploads/pedidos/") for g in guardados)
    assert guardados[0]["url"].endswith(".docx")
    assert set(guardados[0]) == {"name", "size", "contentType", "url"}

    en_disco = _archivos_en(uploads_dir / "pedidos")
    assert len(en_disco) == 2
    stored = guardados[0]["url"].rsplit("/", 1)[1]
    assert (uploads_dir / "pedidos" / stored).read_bytes() == b"contenido docx"

    # servido como estatico
    r = client.get(guardados[0]["url"])
    assert r.status_code == 200
    assert r.content == b"contenido docx"


def test_pedido_multipart_sin_archivos(client):
    r = client.post("/api/orders", data=FORM, files=[("otro", ("x.txt", b"", "text/plain"))])
    assert r.status_code == 200, r.text
    assert r.json()["archivosJson"] is None
    assert r.json()["usuarioId"] is None


def test_pedido_multipart_requiere_nombre(client, uploads_dir):
    data = dict(FORM, nombre=" ")
    r = client.post("/api/orders", data=data, files=[("archivos", ("a.txt", b"abc", "text/plain"))])
    assert r.status_code == 400
    assert _archivos_en(uploads_dir / "pedidos") == []


def test_archivo_en_el_limite_y_uno_de_mas(client, uploads_dir, monkeypatch):
    monkeypatch.setattr(archivos_service, "MAX_FILE_BYTES", 10)

    r = client.post("/api/orders", data=FORM, files=[("archivos", ("justo.bin", b"x" * 10, "application/octet-stream"))])
    assert r.status_code == 200, r.text
    assert len(_archivos_en(uploads_dir / "pedidos")) == 1

    files = [
        ("archivos", ("bien.bin", b"y" * 5, "application/octet-stream")),
        ("archivos", ("grande.bin", b"z" * 11, "application/octet-stream")),
    ]
    r = client.post("/api/orders", data=FORM, files=files)
    assert r.status_code == 400
    assert r.json()["detail"] == "El archivo 'grande.bin' excede 50 MB."
    # nada del lote rechazado queda en disco
    assert len(_archivos_en(uploads_dir / "pedidos")) == 1


def test_solicitud_demasiado_grande(client, monkeypatch):
    monkeypatch.setattr(archivos_service, "MAX_REQUEST_BYTES", 100)
    r = client.post("/api/orders", data=FORM, files=[("archivos", ("a.bin", b"a" * 500, "application/octet-stream"))])
    assert r.status_code == 413


def _crear_pedido(client):
    r = client.post("/api/orders", json={"nombre": "Ana", "telefono": "5555"})
    assert r.status_code == 200
    return r.json()


def test_archivos_admin_se_acumulan(client, admin_headers, uploads_dir):
    p = _crear_pedido(client)
    client.patch(f"/api/orders/{p['id']}/user-response", json={"decision": "Aceptado"}, headers=admin_headers)

    r1 = client.post(
        f"/api/orders/{p['id']}/admin-files",
        files=[("archivos", ("resultado.pdf", b"%PDF-1", "application/pdf"))],
        headers=admin_headers,
    )
    assert r1.status_code == 200, r1.text
    r2 = client.post(
        f"/api/orders/{p['id']}/admin-files",
        files=[("archivos", ("anexo.zip", b"PK..", "application/zip"))],
        headers=admin_headers,
    )
    assert r2.status_code == 200, r2.text

    meta = json.loads(r2.json()["archivosJson"])
    assert [f["name"] for f in meta["adminFiles"]] == ["resultado.pdf", "anexo.zip"]
    assert all(f["url"].startswith("/uploads/pedidos/admin/") for f in meta["adminFiles"])
    assert all(f["uploadedAt"] for f in meta["adminFiles"])
    assert set(meta["adminFiles"][0]) == {"name", "size", "contentType", "url", "uploadedAt"}
    assert meta["userDecision"] == "Aceptado"
    assert len(_archivos_en(uploads_dir / "pedidos" / "admin")) == 2
    assert _archivos_en(uploads_dir / "pedidos") == []


def test_archivos_admin_requiere_archivos(client, admin_headers):
    p = _crear_pedido(client)
    r = client.post(f"/api/orders/{p['id']}/admin-files", data={"nota": "x"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "Debes adjuntar al menos un archivo."


def test_archivos_admin_permisos_y_pedido_inexistente(client, admin_headers, make_user):
    _, user_headers = make_user("estudiante")
    p = _crear_pedido(client)
    files = [("archivos", ("r.pdf", b"1", "application/pdf"))]
    assert client.post(f"/api/orders/{p['id']}/admin-files", files=files, headers=user_headers).status_code == 403
    assert client.post("/api/orders/9999/admin-files", files=files, headers=admin_headers).status_code == 404


def test_archivos_admin_tamano_excedido(client, admin_headers, uploads_dir, monkeypatch):
    monkeypatch.setattr(archivos_service, "MAX_FILE_BYTES", 3)
    p = _crear_pedido(client)
    r = client.post(
        f"/api/orders/{p['id']}/admin-files",
        files=[("archivos", ("enorme.pdf", b"12345", "application/pdf"))],
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert "enorme.pdf" in r.json()["detail"]
    assert _archivos_en(uploads_dir / "pedidos" / "admin") == []


def _multipart_en_trozos(boundary, contenido):
    cuerpo = (
        f'--{boundary}\r\nContent-Disposition: form-data; name="nombre"\r\n\r\nAna\r\n'
        f'--{boundary}\r\nContent-Disposition: form-data; name="telefono"\r\n\r\n5555\r\n'
        f'--{boundary}\r\nContent-Disposition: form-data; name="archivos"; filename="a.bin"\r\n'
        "Content-Type: application/octet-stream\r\n\r\n"
    ).encode() + contenido + f"\r\n--{boundary}--\r\n".encode()

    def trozos():
        for i in range(0, len(cuerpo), 64):
            yield cuerpo[i:i + 64]

    return trozos()


def test_solicitud_sin_content_length_tambien_se_limita(client, uploads_dir, monkeypatch):
    monkeypatch.setattr(archivos_service, "MAX_REQUEST_BYTES", 100)
    r = client.post(
        "/api/orders",
        content=_multipart_en_trozos("lim", b"a" * 500),
        headers={"Content-Type": "multipart/form-data; boundary=lim"},
    )
    assert r.status_code == 413
    assert r.json()["detail"] == "La solicitud excede 250 MB."
    assert _archivos_en(uploads_dir / "pedidos") == []


def test_archivos_admin_sin_content_length_se_limitan(client, admin_headers, uploads_dir, monkeypatch):
    p = _crear_pedido(client)
    monkeypatch.setattr(archivos_service, "MAX_REQUEST_BYTES", 100)
    r = client.post(
        f"/api/orders/{p['id']}/admin-files",
        content=_multipart_en_trozos("lim", b"a" * 500),
        headers={"Content-Type": "multipart/form-data; boundary=lim", **admin_headers},
    )
    assert r.status_code == 413
    assert _archivos_en(uploads_dir / "pedidos" / "admin") == []


def test_cuerpo_en_trozos_bajo_el_limite_pasa(client, uploads_dir):
    r = client.post(
        "/api/orders",
        content=_multipart_en_trozos("lim", b"a" * 500),
        headers={"Content-Type": "multipart/form-data; boundary=lim"},
    )
    assert r.status_code == 200, r.text
    assert json.loads(r.json()["archivosJson"])[0]["size"] == 500
