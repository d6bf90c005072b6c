"""
Pytest configuration y fixtures para tests de firma SRI
"""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from firma_sri.pkcs12_utils import load_signing_identity
from firma_sri.xml_utils import ECUADOR_TZ

P12_PASSWORD = "clave-de-prueba"
FIXED_SIGNING_TIME = datetime(2025, 1, 29, 10, 15, 0, tzinfo=ECUADOR_TZ)

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<factura id="comprobante" version="1.1.0">
    <infoTributaria>
        <ambiente>1</ambiente>
        <razonSocial>Distribuidora Andina S.A.</razonSocial>
        <ruc>1790012345001</ruc>
        <claveAcceso>2901202501179001234500110010010000000011234567813</claveAcceso>
        <codDoc>01</codDoc>
    </infoTributaria>
    <infoFactura>
        <fechaEmision>29/01/2025</fechaEmision>
        <importeTotal>112.00</importeTotal>
    </infoFactura>
</factura>"""


def pytest_configure(config):
    """Registra markers personalizados"""
    config.addinivalue_line(
        "markers", "slow: marca test que genera claves RSA adicionales"
    )
    config.addinivalue_line(
        "markers", "api: marca test del servicio HTTP"
    )


def _build_certificate(private_key, common_name: str, issuer_cn: str = "AC Pruebas SRI",
                       not_before: datetime = None, not_after: datetime = None) -> x509.Certificate:
    now = datetime.now(timezone.utc)
    subject = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "EC"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Distribuidora Andina S.A."),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    issuer = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "EC"),
        x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn),
    ])
    return x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer
    ).public_key(
        private_key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        not_before or now - timedelta(days=1)
    ).not_valid_after(
        not_after or now + timedelta(days=365)
    ).sign(private_key, hashes.SHA256())


@pytest.fixture(scope="session")
def build_certificate():
    """Fábrica de certificados autofirmados (solo para testing)"""
    return _build_certificate


@pytest.fixture(scope="session")
def private_key():
    """Clave RSA 2048 de prueba"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(private_key):
    return _build_certificate(private_key, "Juan Perez Firma")


@pytest.fixture(scope="session")
def p12_bytes(private_key, certificate):
    """Contenedor PKCS#12 protegido con contraseña"""
    return pkcs12.serialize_key_and_certificates(
        name=b"firma",
        key=private_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(P12_PASSWORD.encode("utf-8")),
    )


@pytest.fixture(scope="session")
def p12_unprotected_bytes(private_key, certificate):
    """Contenedor PKCS#12 sin contraseña"""
    return pkcs12.serialize_key_and_certificates(
        name=b"firma",
        key=private_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def p12_password():
    return P12_PASSWORD


@pytest.fixture
def signing_time():
    """Hora de firma fija: 2025-01-29T10:15:00-05:00"""
    return FIXED_SIGNING_TIME


@pytest.fixture
def p12_file(p12_bytes, tmp_path):
    path = tmp_path / "firma.p12"
    path.write_bytes(p12_bytes)
    return path


@pytest.fixture(scope="session")
def identity(p12_bytes):
    return load_signing_identity(p12_bytes, P12_PASSWORD)


@pytest.fixture
def sample_xml():
    """Factura mínima con id='comprobante'"""
    return SAMPLE_XML
