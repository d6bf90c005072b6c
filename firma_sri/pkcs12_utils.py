"""
Carga de la identidad de firma desde un contenedor PKCS#12 (P12/PFX)

El contenedor se lee una sola vez y produce un SigningIdentity inmutable
(certificado X.509 + clave privada RSA) que se comparte, por referencia,
entre todas las operaciones de firma.

Regla de selección de certificado (explícita):
- alias: se usa el certificado cuyo friendly name coincide
- sin alias: se usa el certificado cuya clave pública corresponde a la clave privada
- strict=True: se rechaza un contenedor con más de un certificado
"""
import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .crypto_engine import DEFAULT_ALGORITHM, compute_digest
from .exceptions import IdentityLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningIdentity:
    """Certificado y clave privada listos para firmar"""
    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey

    @property
    def der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def certificate_base64(self) -> str:
        return base64.b64encode(self.der).decode("ascii")

    @property
    def issuer_name(self) -> str:
        return self.certificate.issuer.rfc4514_string()

    @property
    def subject_name(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def serial_number(self) -> int:
        return self.certificate.serial_number

    @property
    def not_valid_before(self) -> datetime:
        if hasattr(self.certificate, "not_valid_before_utc"):
            return self.certificate.not_valid_before_utc
        return self.certificate.not_valid_before.replace(tzinfo=timezone.utc)

    @property
    def not_valid_after(self) -> datetime:
        if hasattr(self.certificate, "not_valid_after_utc"):
            return self.certificate.not_valid_after_utc
        return self.certificate.not_valid_after.replace(tzinfo=timezone.utc)

    @property
    def modulus(self) -> int:
        return self.certificate.public_key().public_numbers().n

    @property
    def exponent(self) -> int:
        return self.certificate.public_key().public_numbers().e

    def certificate_digest(self, algorithm: str = DEFAULT_ALGORITHM) -> str:
        """Digest base64 del DER del certificado (etsi:CertDigest)"""
        return compute_digest(self.der, algorithm)

    def issuer_common_name(self) -> str:
        return _common_name(self.certificate.issuer)

    def subject_common_name(self) -> str:
        return _common_name(self.certificate.subject)

    def certificate_info(self) -> Dict[str, Any]:
        """Información legible del certificado (sin secretos)"""
        return {
            "subject": self.subject_name,
            "issuer": self.issuer_name,
            "serial_number": str(self.serial_number),
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
            "key_size": self.private_key.key_size,
        }


def _common_name(name: x509.Name) -> str:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return attrs[0].value if attrs else "N/A"


def _password_bytes(password: Union[str, bytes, None]) -> Optional[bytes]:
    if password is None:
        return None
    if isinstance(password, bytes):
        return password
    return password.encode("utf-8")


def _load_container(p12_data: bytes, password: Union[str, bytes, None]) -> pkcs12.PKCS12KeyAndCertificates:
    password_bytes = _password_bytes(password)
    if password_bytes:
        return pkcs12.load_pkcs12(p12_data, password_bytes)

    # Contenedor sin protección: primero sin contraseña, luego contraseña vacía
    try:
        return pkcs12.load_pkcs12(p12_data, None)
    except ValueError:
        return pkcs12.load_pkcs12(p12_data, b"")


def _matches_key(certificate: x509.Certificate, private_key: rsa.RSAPrivateKey) -> bool:
    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    return public_key.public_numbers() == private_key.public_key().public_numbers()


def _select_certificate(
    container: pkcs12.PKCS12KeyAndCertificates,
    private_key: rsa.RSAPrivateKey,
    alias: Optional[str],
    strict: bool,
) -> x509.Certificate:
    candidates: List[pkcs12.PKCS12Certificate] = []
    if container.cert is not None:
        candidates.append(container.cert)
    candidates.extend(container.additional_certs)

    if not candidates:
        raise IdentityLoadError("El contenedor PKCS#12 no contiene certificados")

    if strict and len(candidates) > 1:
        raise IdentityLoadError(
            f"El contenedor PKCS#12 contiene {len(candidates)} certificados (modo estricto)"
        )

    if alias is not None:
        alias_bytes = alias.encode("utf-8")
        selected = [c for c in candidates if c.friendly_name == alias_bytes]
        if not selected:
            raise IdentityLoadError(f"No se encontró un certificado con alias '{alias}'")
    else:
        selected = [c for c in candidates if _matches_key(c.certificate, private_key)]
        if not selected:
            raise IdentityLoadError(
                "Ningún certificado del contenedor corresponde a la clave privada"
            )

    if len(selected) > 1:
        logger.warning(
            f"{len(selected)} certificados cumplen la regla de selección; se usa el primero"
        )

    certificate = selected[0].certificate
    if alias is not None and not _matches_key(certificate, private_key):
        raise IdentityLoadError(
            f"El certificado con alias '{alias}' no corresponde a la clave privada"
        )
    return certificate


def load_signing_identity(
    p12_data: bytes,
    password: Union[str, bytes, None] = "",
    *,
    alias: Optional[str] = None,
    strict: bool = False,
) -> SigningIdentity:
    """
    Carga certificado y clave privada desde los bytes de un PKCS#12.

    Args:
        p12_data: Bytes del contenedor P12/PFX
        password: Contraseña ('' o None para contenedores sin protección)
        alias: Friendly name del certificado a usar (opcional)
        strict: Rechazar contenedores con más de un certificado

    Returns:
        SigningIdentity inmutable

    Raises:
        IdentityLoadError: Contenedor inválido, contraseña incorrecta,
                           sin clave/certificado o clave no RSA
    """
    if not isinstance(p12_data, (bytes, bytearray)) or not p12_data:
        raise IdentityLoadError("Los datos del contenedor PKCS#12 están vacíos o no son bytes")

    try:
        container = _load_container(bytes(p12_data), password)
    except (ValueError, TypeError) as e:
        raise IdentityLoadError(
            "Contraseña del certificado P12 incorrecta o el archivo no es un PKCS#12 válido"
        ) from e

    private_key = container.key
    if private_key is None:
        raise IdentityLoadError("No se pudo extraer la clave privada del archivo P12")
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise IdentityLoadError("La clave privada debe ser RSA")

    certificate = _select_certificate(container, private_key, alias, strict)
    identity = SigningIdentity(certificate=certificate, private_key=private_key)

    now = datetime.now(timezone.utc)
    if identity.not_valid_after < now:
        logger.warning(f"Certificado expirado. Válido hasta: {identity.not_valid_after}")
    elif identity.not_valid_before > now:
        logger.warning(f"Certificado aún no válido. Válido desde: {identity.not_valid_before}")

    logger.info(
        f"Certificado cargado. Emisor: {identity.issuer_common_name()}, "
        f"Titular: {identity.subject_common_name()}, "
        f"Válido hasta: {identity.not_valid_after.isoformat()}"
    )
    return identity


def load_signing_identity_from_file(
    p12_path: Union[str, Path],
    password: Union[str, bytes, None] = "",
    **kwargs: Any,
) -> SigningIdentity:
    """
    Lee un archivo .p12/.pfx y carga la identidad de firma.

    Raises:
        IdentityLoadError: Si el archivo no existe o no se puede cargar
    """
    p12_file = Path(p12_path)
    if not p12_file.is_file():
        raise IdentityLoadError(f"Archivo P12 no encontrado: {p12_path}")

    ext = p12_file.suffix.lower()
    if ext not in (".p12", ".pfx"):
        logger.warning(f"Extensión inusual para certificado PKCS#12: {ext}")

    try:
        with open(p12_file, "rb") as f:
            p12_data = f.read()
    except OSError as e:
        raise IdentityLoadError(f"No se pudo leer el archivo P12: {str(e)}") from e

    return load_signing_identity(p12_data, password, **kwargs)
