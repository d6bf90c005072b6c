"""
Validación estructural de comprobantes firmados con XAdES-BES

IMPORTANTE: es una validación de estructura (linting), no criptográfica.
No recalcula digests ni verifica SignatureValue contra el certificado;
para validación completa usar el portal/servicios del SRI.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple, Union

from lxml import etree

from .exceptions import ValidationParseError
from .xml_utils import (
    DS_NS,
    ETSI_NS,
    has_self_closing_tags,
    has_utf8_declaration,
    make_parser,
    to_bytes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationReport:
    """Resultado de una validación; inmutable una vez retornado"""
    valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    info: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> Dict[str, Any]:
        """Forma estable: {valid, errors, warnings, info}"""
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "info": dict(self.info),
        }


class _ReportBuilder:
    def __init__(self):
        self.valid = True
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.info: Dict[str, Any] = {}

    def error(self, message: str) -> None:
        self.valid = False
        self.errors.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def build(self) -> ValidationReport:
        return ValidationReport(
            valid=self.valid,
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            info=MappingProxyType(dict(self.info)),
        )


def _find(element: etree._Element, ns: str, tag: str) -> List[etree._Element]:
    """Descendientes con el nombre calificado dado"""
    return list(element.iter(f"{{{ns}}}{tag}"))


def parse_signed_xml(signed_xml: Union[str, bytes]) -> etree._Element:
    """
    Parsea el XML firmado.

    Raises:
        ValidationParseError: Si el XML no es bien formado
    """
    parser = make_parser("utf-8") if isinstance(signed_xml, str) else make_parser()
    try:
        return etree.fromstring(to_bytes(signed_xml), parser=parser)
    except (etree.XMLSyntaxError, TypeError, ValueError) as e:
        raise ValidationParseError(f"El documento no es un XML bien formado: {str(e)}") from e


class XadesValidator:
    """
    Validador de estructura XAdES-BES para documentos del SRI.

    Solo la ausencia de Signature, SignedInfo o SignatureValue invalida
    el documento; todo lo demás son advertencias.
    """

    def validate_structure(self, signed_xml: Union[str, bytes]) -> ValidationReport:
        """
        Valida la estructura básica de un documento firmado.

        Args:
            signed_xml: Documento XML firmado

        Returns:
            ValidationReport
        """
        report = _ReportBuilder()

        try:
            root = parse_signed_xml(signed_xml)
        except ValidationParseError as e:
            report.error(str(e))
            return report.build()

        text = signed_xml if isinstance(signed_xml, str) else to_bytes(signed_xml).decode("utf-8", errors="replace")

        # 1. Signature
        signatures = _find(root, DS_NS, "Signature")
        if not signatures:
            report.error("No se encontró el elemento ds:Signature")
            return report.build()

        report.info["signatureCount"] = len(signatures)
        signature = signatures[0]

        # 2. SignedInfo
        if _find(signature, DS_NS, "SignedInfo"):
            report.info["hasSignedInfo"] = True
        else:
            report.error("No se encontró el elemento ds:SignedInfo")

        # 3. SignatureValue
        if _find(signature, DS_NS, "SignatureValue"):
            report.info["hasSignatureValue"] = True
        else:
            report.error("No se encontró el elemento ds:SignatureValue")

        # 4. KeyInfo
        key_info = _find(signature, DS_NS, "KeyInfo")
        if not key_info:
            report.warning("No se encontró el elemento ds:KeyInfo")
        else:
            report.info["hasKeyInfo"] = True
            x509_data = _find(key_info[0], DS_NS, "X509Data")
            report.info["hasCertificate"] = bool(
                x509_data and _find(x509_data[0], DS_NS, "X509Certificate")
            )

        # 5. Object -> QualifyingProperties -> SignedProperties
        objects = _find(signature, DS_NS, "Object")
        if not objects:
            report.warning("No se encontró el elemento ds:Object")
        else:
            report.info["hasObject"] = True
            self._check_qualifying_properties(objects[0], report)

        # 6. Tags auto-cerrados (requisito SRI)
        if has_self_closing_tags(text):
            report.warning("Se encontraron tags auto-cerrados, el SRI puede rechazarlos")

        # 7. Encoding UTF-8
        if not has_utf8_declaration(text):
            report.warning("El documento no especifica encoding UTF-8")

        result = report.build()
        logger.debug(
            f"Validación estructural: valid={result.valid}, "
            f"errores={len(result.errors)}, advertencias={len(result.warnings)}"
        )
        return result

    def _check_qualifying_properties(self, obj: etree._Element, report: _ReportBuilder) -> None:
        qualifying = _find(obj, ETSI_NS, "QualifyingProperties")
        if not qualifying:
            report.warning("No se encontraron QualifyingProperties (XAdES)")
            return
        report.info["hasQualifyingProperties"] = True

        signed_props = _find(qualifying[0], ETSI_NS, "SignedProperties")
        if not signed_props:
            report.warning("No se encontraron SignedProperties (XAdES)")
            return
        report.info["hasSignedProperties"] = True

        signing_time = _find(signed_props[0], ETSI_NS, "SigningTime")
        if signing_time:
            report.info["signingTime"] = (signing_time[0].text or "").strip()
        else:
            report.warning("No se encontró SigningTime")

        signing_cert = _find(signed_props[0], ETSI_NS, "SigningCertificate")
        report.info["hasSigningCertificate"] = bool(signing_cert)
        if not signing_cert:
            report.warning("No se encontró SigningCertificate")

    def validate_file(self, file_path: Union[str, Path]) -> ValidationReport:
        """Valida un archivo XML firmado (bytes; el charset lo resuelve el parser)"""
        with open(file_path, "rb") as f:
            signed_xml = f.read()
        return self.validate_structure(signed_xml)


def validate(signed_xml: Union[str, bytes]) -> ValidationReport:
    """Atajo: XadesValidator().validate_structure(signed_xml)"""
    return XadesValidator().validate_structure(signed_xml)
