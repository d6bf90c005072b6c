"""
Servicio HTTP FastAPI para firma XAdES-BES de comprobantes SRI

Endpoints:
- GET  /api/health    estado del servicio y del certificado cargado
- POST /api/sign      firma un comprobante XML
- POST /api/validate  valida la estructura de un XML firmado

Ejecutar:
    uvicorn firma_sri.main:app --port 3000
    python -m firma_sri.main
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import __version__
from .config import FirmaConfig, get_firma_config
from .crypto_engine import get_algorithm
from .exceptions import FirmaError, IdentityLoadError, InvalidOptionsError, MalformedDocumentError
from .log_config import setup_logging
from .pkcs12_utils import load_signing_identity_from_file
from .validator import XadesValidator
from .xades_signer import SignatureOptions, XadesSigner

logger = logging.getLogger(__name__)

app = FastAPI(title="Firma electrónica SRI", version=__version__)
app.state.signer = XadesSigner()
app.state.config = None


class SignRequest(BaseModel):
    xmlContent: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


class ValidateRequest(BaseModel):
    xmlContent: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_signer(config: FirmaConfig) -> XadesSigner:
    """
    Carga el certificado configurado.

    Si no hay certificado configurado o falla la carga, retorna un
    firmador vacío: el servicio sigue arriba pero /api/sign responde 503.
    """
    if not config.has_certificate:
        logger.warning("SRI_CERT_PATH no configurado: el servicio no podrá firmar")
        return XadesSigner()

    try:
        identity = load_signing_identity_from_file(
            config.cert_path,
            config.cert_password,
            alias=config.cert_alias,
        )
    except IdentityLoadError as e:
        logger.error(f"Error al cargar certificado {config.cert_path}: {str(e)}")
        return XadesSigner()

    return XadesSigner(identity)


@app.on_event("startup")
def startup_event():
    config = get_firma_config()
    setup_logging(config.log_level, config.log_dir)
    app.state.config = config
    app.state.signer = load_signer(config)


def _default_options() -> Dict[str, Any]:
    config = app.state.config
    if config is None:
        return {}
    place = config.production_place()
    return {
        "algorithm": config.algorithm,
        "canonicalization": config.canonicalization,
        "productionPlace": {
            "city": place.city,
            "state": place.state,
            "code": place.code,
            "country": place.country,
        },
    }


@app.get("/api/health")
def health():
    signer: XadesSigner = app.state.signer
    certificate: Dict[str, Any] = {"loaded": signer.is_loaded}
    if signer.is_loaded:
        identity = signer.identity
        certificate.update({
            "issuer": identity.issuer_common_name(),
            "subject": identity.subject_common_name(),
            "validFrom": identity.not_valid_before.isoformat(),
            "validUntil": identity.not_valid_after.isoformat(),
        })

    return {
        "status": "ok",
        "timestamp": _now(),
        "certificate": certificate,
        "version": __version__,
    }


@app.post("/api/sign")
def sign(request: SignRequest):
    signer: XadesSigner = app.state.signer
    if not signer.is_loaded:
        raise HTTPException(
            status_code=503,
            detail="Servicio no disponible: no hay certificado cargado",
        )

    xml_content = request.xmlContent
    if not xml_content:
        raise HTTPException(status_code=400, detail="Se requiere el campo xmlContent")

    if not xml_content.strip().startswith("<"):
        raise HTTPException(status_code=400, detail="El contenido no parece ser XML válido")

    # Las opciones del request pisan las del ambiente
    raw_options = {**_default_options(), **(request.options or {})}
    try:
        options = SignatureOptions.from_dict(raw_options)
        signed_xml = signer.sign(xml_content, options)
    except (MalformedDocumentError, InvalidOptionsError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FirmaError as e:
        logger.error(f"Error al firmar: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "signedXml": signed_xml,
        "timestamp": _now(),
        "algorithm": get_algorithm(options.algorithm).name,
    }


@app.post("/api/validate")
def validate(request: ValidateRequest):
    if not request.xmlContent:
        raise HTTPException(status_code=400, detail="Se requiere el campo xmlContent")

    report = XadesValidator().validate_structure(request.xmlContent)
    return {
        "success": True,
        "validation": report.to_dict(),
        "timestamp": _now(),
    }


def run():
    """Inicia el servidor uvicorn en el puerto configurado (PORT)"""
    config = get_firma_config()
    print(f"🚀 Iniciando servicio de firma SRI en puerto {config.port} (ambiente {config.env})")
    uvicorn.run(
        "firma_sri.main:app",
        host="0.0.0.0",
        port=config.port,
        reload=False,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    run()
