"""
Configuración del firmador SRI
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .crypto_engine import DEFAULT_ALGORITHM, get_algorithm
from .exceptions import DigestError
from .xades_signer import ProductionPlace, SignatureOptions
from .xml_utils import CANONICALIZATION_C14N, CANONICALIZATION_MODES

load_dotenv()


class FirmaConfig:
    """Configuración del firmador por ambiente"""

    ENV_TEST = "test"
    ENV_PROD = "prod"

    DEFAULT_PORT = 3000

    # Lugar de producción por defecto (matriz en Quito)
    DEFAULT_CITY = "Quito"
    DEFAULT_STATE = "Pichincha"
    DEFAULT_CODE = "170150"
    DEFAULT_COUNTRY = "EC"

    def __init__(self, env: str = ENV_TEST):
        """
        Inicializa la configuración

        Args:
            env: Ambiente ('test' o 'prod')
        """
        if env not in [self.ENV_TEST, self.ENV_PROD]:
            raise ValueError(f"Ambiente inválido: {env}. Debe ser 'test' o 'prod'")

        self.env = env

        # Certificado de firma (.p12/.pfx)
        cert_path = os.getenv("SRI_CERT_PATH")
        self.cert_path = Path(cert_path) if cert_path else None
        self.cert_password = os.getenv("SRI_CERT_PASSWORD", "")
        self.cert_alias = os.getenv("SRI_CERT_ALIAS") or None

        self.algorithm = os.getenv("SRI_SIGN_ALGORITHM", DEFAULT_ALGORITHM)
        try:
            get_algorithm(self.algorithm)
        except DigestError as e:
            raise ValueError(f"SRI_SIGN_ALGORITHM inválido: {self.algorithm}") from e

        self.canonicalization = os.getenv("SRI_CANONICALIZATION", CANONICALIZATION_C14N)
        if self.canonicalization not in CANONICALIZATION_MODES:
            raise ValueError(
                f"SRI_CANONICALIZATION inválido: {self.canonicalization}. "
                f"Debe ser uno de {', '.join(CANONICALIZATION_MODES)}"
            )

        self.city = os.getenv("PRODUCTION_CITY", self.DEFAULT_CITY)
        self.state = os.getenv("PRODUCTION_STATE", self.DEFAULT_STATE)
        self.code = os.getenv("PRODUCTION_CODE", self.DEFAULT_CODE)
        self.country = os.getenv("PRODUCTION_COUNTRY", self.DEFAULT_COUNTRY)

        self.port = int(os.getenv("PORT", str(self.DEFAULT_PORT)))

        self.log_level = os.getenv("SRI_LOG_LEVEL", "INFO").upper()
        log_dir = os.getenv("SRI_LOG_DIR")
        self.log_dir = Path(log_dir) if log_dir else None

    @property
    def has_certificate(self) -> bool:
        return self.cert_path is not None

    def production_place(self) -> ProductionPlace:
        return ProductionPlace(
            city=self.city,
            state=self.state,
            code=self.code,
            country=self.country,
        )

    def signature_options(self) -> SignatureOptions:
        """Opciones de firma por defecto del servicio"""
        return SignatureOptions(
            algorithm=self.algorithm,
            production_place=self.production_place(),
            canonicalization=self.canonicalization,
        )


def get_firma_config(env: Optional[str] = None) -> FirmaConfig:
    """
    Obtiene la configuración desde variables de entorno

    Args:
        env: Ambiente ('test' o 'prod'). Si None, usa SRI_ENV

    Returns:
        Configuración del firmador
    """
    if env is None:
        env = os.getenv("SRI_ENV", FirmaConfig.ENV_TEST)

    return FirmaConfig(env)
