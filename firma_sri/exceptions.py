"""
Excepciones del módulo de firma XAdES-BES para comprobantes SRI
"""


class FirmaError(Exception):
    """Excepción base para errores de firma y validación"""
    pass


class IdentityLoadError(FirmaError):
    """Error al cargar el certificado/clave desde un contenedor PKCS#12"""
    pass


class SigningError(FirmaError):
    """Error al firmar un documento (sin identidad cargada, primitiva fallida)"""
    pass


class MalformedDocumentError(SigningError):
    """El documento de entrada no es XML bien formado o no tiene un único elemento raíz"""
    pass


class DigestError(SigningError):
    """Error al calcular un digest"""
    pass


class SignError(SigningError):
    """Error al calcular la firma RSA"""
    pass


class InvalidOptionsError(SigningError):
    """Opciones de firma con tipo o valor inválido (productionPlace, signerRole, algorithm...)"""
    pass


class ValidationParseError(FirmaError):
    """El XML firmado no es bien formado; se omiten las verificaciones estructurales"""
    pass
