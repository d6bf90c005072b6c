"""
Firma electrónica XAdES-BES para comprobantes del SRI
Ecuador - facturación electrónica
"""
__version__ = "1.0.0"

from .config import FirmaConfig, get_firma_config
from .exceptions import (
    DigestError,
    FirmaError,
    IdentityLoadError,
    InvalidOptionsError,
    MalformedDocumentError,
    SignError,
    SigningError,
    ValidationParseError,
)
from .pkcs12_utils import SigningIdentity, load_signing_identity, load_signing_identity_from_file
from .validator import ValidationReport, XadesValidator, validate
from .xades_signer import ProductionPlace, SignatureOptions, XadesSigner, build_signature

__all__ = [
    'FirmaConfig', 'get_firma_config',
    'FirmaError', 'IdentityLoadError', 'SigningError', 'MalformedDocumentError',
    'DigestError', 'SignError', 'InvalidOptionsError', 'ValidationParseError',
    'SigningIdentity', 'load_signing_identity', 'load_signing_identity_from_file',
    'ValidationReport', 'XadesValidator', 'validate',
    'ProductionPlace', 'SignatureOptions', 'XadesSigner', 'build_signature',
]
