"""
Tests para la carga de identidad desde PKCS#12
"""
import base64
import hashlib
import logging
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from firma_sri.exceptions import IdentityLoadError
from firma_sri.pkcs12_utils import (
    SigningIdentity,
    load_signing_identity,
    load_signing_identity_from_file,
)


@pytest.fixture(scope="module")
def other_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def other_certificate(other_key, build_certificate):
    return build_certificate(other_key, "Otro Titular")


def test_load_signing_identity(p12_bytes, p12_password, certificate, private_key):
    identity = load_signing_identity(p12_bytes, p12_password)

    assert isinstance(identity, SigningIdentity)
    assert identity.certificate == certificate
    assert identity.private_key.private_numbers() == private_key.private_numbers()
    assert identity.serial_number == certificate.serial_number


def test_load_accepts_password_bytes(p12_bytes, p12_password):
    identity = load_signing_identity(p12_bytes, p12_password.encode("utf-8"))
    assert identity.subject_common_name() == "Juan Perez Firma"


def test_load_from_file(p12_file, p12_password):
    identity = load_signing_identity_from_file(p12_file, p12_password)
    assert identity.issuer_common_name() == "AC Pruebas SRI"


def test_wrong_password(p12_bytes):
    with pytest.raises(IdentityLoadError, match="incorrecta"):
        load_signing_identity(p12_bytes, "clave-equivocada")


def test_not_a_pkcs12_container():
    with pytest.raises(IdentityLoadError):
        load_signing_identity(b"esto no es un contenedor pkcs12", "x")


def test_empty_data():
    with pytest.raises(IdentityLoadError, match="vacíos"):
        load_signing_identity(b"", "x")


@pytest.mark.parametrize("password", ["", None])
def test_unprotected_container(p12_unprotected_bytes, certificate, password):
    identity = load_signing_identity(p12_unprotected_bytes, password)
    assert identity.certificate == certificate


def test_file_not_found(tmp_path):
    with pytest.raises(IdentityLoadError, match="no encontrado"):
        load_signing_identity_from_file(tmp_path / "no_existe.p12", "x")


def test_unusual_extension_warns(p12_bytes, p12_password, tmp_path, caplog):
    path = tmp_path / "firma.bin"
    path.write_bytes(p12_bytes)

    with caplog.at_level(logging.WARNING, logger="firma_sri"):
        load_signing_identity_from_file(path, p12_password)

    assert "Extensión inusual" in caplog.text


def test_password_is_never_logged(p12_bytes, p12_password, caplog):
    with caplog.at_level(logging.DEBUG, logger="firma_sri"):
        load_signing_identity(p12_bytes, p12_password)

    assert "Certificado cargado" in caplog.text
    assert p12_password not in caplog.text


def test_select_by_alias(p12_bytes, p12_password, certificate):
    identity = load_signing_identity(p12_bytes, p12_password, alias="firma")
    assert identity.certificate == certificate


def test_unknown_alias(p12_bytes, p12_password):
    with pytest.raises(IdentityLoadError, match="alias"):
        load_signing_identity(p12_bytes, p12_password, alias="otro")


@pytest.mark.slow
def test_multiple_certificates_selects_matching_key(private_key, certificate, other_certificate):
    data = pkcs12.serialize_key_and_certificates(
        name=b"firma",
        key=private_key,
        cert=certificate,
        cas=[other_certificate],
        encryption_algorithm=serialization.NoEncryption(),
    )

    identity = load_signing_identity(data, "")
    assert identity.certificate == certificate


@pytest.mark.slow
def test_multiple_certificates_strict(private_key, certificate, other_certificate):
    data = pkcs12.serialize_key_and_certificates(
        name=b"firma",
        key=private_key,
        cert=certificate,
        cas=[other_certificate],
        encryption_algorithm=serialization.NoEncryption(),
    )

    with pytest.raises(IdentityLoadError, match="estricto"):
        load_signing_identity(data, "", strict=True)


def test_non_rsa_key(build_certificate):
    ec_key = ec.generate_private_key(ec.SECP256R1())
    cert = build_certificate(ec_key, "Titular EC")
    data = pkcs12.serialize_key_and_certificates(
        name=b"ec",
        key=ec_key,
        cert=cert,
        cas=None,
        encryption_algorithm=serialization.NoEncryption(),
    )

    with pytest.raises(IdentityLoadError, match="RSA"):
        load_signing_identity(data, "")


def test_expired_certificate_loads_with_warning(private_key, build_certificate, caplog):
    now = datetime.now(timezone.utc)
    expired = build_certificate(
        private_key,
        "Titular Vencido",
        not_before=now - timedelta(days=400),
        not_after=now - timedelta(days=35),
    )
    data = pkcs12.serialize_key_and_certificates(
        name=b"vencido",
        key=private_key,
        cert=expired,
        cas=None,
        encryption_algorithm=serialization.NoEncryption(),
    )

    with caplog.at_level(logging.WARNING, logger="firma_sri"):
        identity = load_signing_identity(data, "")

    assert identity.not_valid_after < now
    assert "expirado" in caplog.text


def test_identity_properties(identity, certificate):
    der = certificate.public_bytes(serialization.Encoding.DER)

    assert identity.der == der
    assert base64.b64decode(identity.certificate_base64) == der
    assert identity.issuer_name == certificate.issuer.rfc4514_string()
    assert identity.subject_name == certificate.subject.rfc4514_string()
    assert identity.modulus == certificate.public_key().public_numbers().n
    assert identity.exponent == 65537
    assert identity.not_valid_before.tzinfo is not None
    assert identity.certificate_digest("SHA-1") == base64.b64encode(hashlib.sha1(der).digest()).decode()
    assert identity.certificate_digest("SHA-256") == base64.b64encode(hashlib.sha256(der).digest()).decode()


def test_certificate_info(identity):
    info = identity.certificate_info()

    assert set(info) == {
        "subject", "issuer", "serial_number", "not_valid_before", "not_valid_after", "key_size",
    }
    assert info["key_size"] == 2048
    assert info["serial_number"] == str(identity.serial_number)
    assert "CN=Juan Perez Firma" in info["subject"]


def test_identity_is_immutable(identity):
    with pytest.raises(AttributeError):
        identity.certificate = None
