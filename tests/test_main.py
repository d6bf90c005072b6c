"""
Tests del servicio HTTP (FastAPI)
"""
import pytest
from fastapi.testclient import TestClient

from firma_sri.config import get_firma_config
from firma_sri.main import app, load_signer
from firma_sri.validator import validate
from firma_sri.xades_signer import XadesSigner

pytestmark = pytest.mark.api


@pytest.fixture
def client():
    # Sin context manager: no se ejecuta el evento de startup
    return TestClient(app)


@pytest.fixture
def loaded_signer(identity):
    previous = app.state.signer
    app.state.signer = XadesSigner(identity)
    yield app.state.signer
    app.state.signer = previous


@pytest.fixture
def empty_signer():
    previous = app.state.signer
    app.state.signer = XadesSigner()
    yield app.state.signer
    app.state.signer = previous


def test_health_with_certificate(client, loaded_signer):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == "1.0.0"
    assert data["certificate"]["loaded"] is True
    assert data["certificate"]["subject"] == "Juan Perez Firma"
    assert data["certificate"]["issuer"] == "AC Pruebas SRI"
    assert "validUntil" in data["certificate"]


def test_health_without_certificate(client, empty_signer):
    data = client.get("/api/health").json()
    assert data["certificate"] == {"loaded": False}


def test_sign(client, loaded_signer, sample_xml):
    response = client.post("/api/sign", json={"xmlContent": sample_xml})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["algorithm"] == "SHA-1"
    assert validate(data["signedXml"]).valid


def test_sign_with_options(client, loaded_signer, sample_xml):
    response = client.post("/api/sign", json={
        "xmlContent": sample_xml,
        "options": {
            "algorithm": "SHA-256",
            "productionPlace": {"city": "Cuenca", "state": "Azuay", "code": "010150", "country": "EC"},
            "signerRole": {"claimed": ["Emisor"]},
        },
    })

    assert response.status_code == 200
    data = response.json()
    assert data["algorithm"] == "SHA-256"
    assert "<etsi:City>Cuenca</etsi:City>" in data["signedXml"]
    assert "<etsi:ClaimedRole>Emisor</etsi:ClaimedRole>" in data["signedXml"]


def test_sign_without_certificate(client, empty_signer, sample_xml):
    response = client.post("/api/sign", json={"xmlContent": sample_xml})
    assert response.status_code == 503


def test_sign_missing_content(client, loaded_signer):
    assert client.post("/api/sign", json={}).status_code == 400


def test_sign_non_xml_content(client, loaded_signer):
    assert client.post("/api/sign", json={"xmlContent": "hola"}).status_code == 400


def test_sign_malformed_xml(client, loaded_signer):
    response = client.post("/api/sign", json={"xmlContent": "<factura><a></factura>"})
    assert response.status_code == 400


def test_sign_unsupported_algorithm(client, loaded_signer, sample_xml):
    response = client.post("/api/sign", json={
        "xmlContent": sample_xml,
        "options": {"algorithm": "MD5"},
    })
    assert response.status_code == 400
    assert "MD5" in response.json()["detail"]


@pytest.mark.parametrize("options", [
    {"productionPlace": "Quito"},
    {"signerRole": 5},
    {"signerRole": [1, 2]},
    {"canonicalization": "exc-c14n"},
])
def test_sign_invalid_options(client, loaded_signer, sample_xml, options):
    response = client.post("/api/sign", json={"xmlContent": sample_xml, "options": options})

    assert response.status_code == 400
    assert response.json()["detail"]


def test_validate(client, identity, sample_xml):
    signed = XadesSigner(identity).sign(sample_xml)
    response = client.post("/api/validate", json={"xmlContent": signed})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["validation"]["valid"] is True
    assert data["validation"]["info"]["hasSigningCertificate"] is True


def test_validate_invalid_xml(client):
    data = client.post("/api/validate", json={"xmlContent": "<sin-cerrar>"}).json()

    assert data["validation"]["valid"] is False
    assert len(data["validation"]["errors"]) == 1


def test_validate_missing_content(client):
    assert client.post("/api/validate", json={}).status_code == 400


def test_load_signer_from_config(monkeypatch, p12_file, p12_password):
    monkeypatch.setenv("SRI_CERT_PATH", str(p12_file))
    monkeypatch.setenv("SRI_CERT_PASSWORD", p12_password)
    monkeypatch.delenv("SRI_CERT_ALIAS", raising=False)

    assert load_signer(get_firma_config()).is_loaded


def test_load_signer_wrong_password(monkeypatch, p12_file):
    monkeypatch.setenv("SRI_CERT_PATH", str(p12_file))
    monkeypatch.setenv("SRI_CERT_PASSWORD", "incorrecta")

    assert not load_signer(get_firma_config()).is_loaded


def test_load_signer_without_path(monkeypatch):
    monkeypatch.delenv("SRI_CERT_PATH", raising=False)
    assert not load_signer(get_firma_config()).is_loaded
