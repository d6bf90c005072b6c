"""
Motor de digest y firma RSA para XAdES-BES

El algoritmo es siempre un parámetro ('SHA-1' por defecto para el SRI,
'SHA-256' como alternativa); los puntos de llamada no lo fijan.
"""
import base64
import hashlib
import logging
from dataclasses import dataclass
from typing import Dict

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .exceptions import DigestError, SignError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlgorithmSuite:
    """Par digest/firma con sus URIs XML-DSig"""
    name: str
    hashlib_name: str
    digest_uri: str
    signature_uri: str

    def hash_algorithm(self) -> hashes.HashAlgorithm:
        if self.hashlib_name == "sha1":
            return hashes.SHA1()
        return hashes.SHA256()


SHA1 = AlgorithmSuite(
    name="SHA-1",
    hashlib_name="sha1",
    digest_uri="http://www.w3.org/2000/09/xmldsig#sha1",
    signature_uri="http://www.w3.org/2000/09/xmldsig#rsa-sha1",
)

SHA256 = AlgorithmSuite(
    name="SHA-256",
    hashlib_name="sha256",
    digest_uri="http://www.w3.org/2001/04/xmlenc#sha256",
    signature_uri="http://www.w3.org/2001/04/xmldsig-more#rsa-sha256",
)

DEFAULT_ALGORITHM = SHA1.name

_ALGORITHMS: Dict[str, AlgorithmSuite] = {
    "SHA-1": SHA1,
    "SHA1": SHA1,
    "SHA-256": SHA256,
    "SHA256": SHA256,
}


def get_algorithm(name: str) -> AlgorithmSuite:
    """
    Resuelve un nombre de algoritmo ('SHA-1', 'sha1', 'SHA-256', 'sha256').

    Raises:
        DigestError: Si el algoritmo no está soportado
    """
    if isinstance(name, AlgorithmSuite):
        return name
    suite = _ALGORITHMS.get(str(name).strip().upper())
    if suite is None:
        raise DigestError(
            f"Algoritmo no soportado: {name}. Use 'SHA-1' o 'SHA-256'"
        )
    return suite


def compute_digest(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Calcula el digest de una secuencia de bytes y lo retorna en base64.

    Args:
        data: Bytes exactos del fragmento serializado
        algorithm: Nombre del algoritmo

    Returns:
        Digest en base64
    """
    suite = get_algorithm(algorithm)
    if not isinstance(data, (bytes, bytearray)):
        raise DigestError(f"El digest requiere bytes, no {type(data).__name__}")
    digest = hashlib.new(suite.hashlib_name, bytes(data)).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_bytes(data: bytes, private_key: rsa.RSAPrivateKey, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Firma RSA PKCS#1 v1.5 (determinística) y retorna el valor en base64.

    Args:
        data: Bytes exactos de SignedInfo
        private_key: Clave privada RSA
        algorithm: Nombre del algoritmo

    Raises:
        SignError: Si la clave no es RSA o la primitiva falla
    """
    suite = get_algorithm(algorithm)
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise SignError("La clave privada debe ser RSA")
    if not isinstance(data, (bytes, bytearray)):
        raise SignError(f"La firma requiere bytes, no {type(data).__name__}")

    try:
        signature = private_key.sign(bytes(data), padding.PKCS1v15(), suite.hash_algorithm())
    except Exception as e:
        raise SignError(f"Error al calcular la firma RSA: {str(e)}") from e

    logger.debug(f"SignedInfo firmado con {suite.name} ({private_key.key_size} bits)")
    return base64.b64encode(signature).decode("ascii")


def int_to_base64(value: int) -> str:
    """
    Entero sin signo a base64 big-endian de longitud mínima
    (sin byte 0x00 de signo), como exige ds:RSAKeyValue.
    """
    if value < 0:
        raise ValueError("El valor debe ser un entero no negativo")
    length = max(1, (value.bit_length() + 7) // 8)
    return base64.b64encode(value.to_bytes(length, "big")).decode("ascii")
