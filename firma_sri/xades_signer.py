"""
Firma XAdES-BES para comprobantes electrónicos del SRI (Ecuador)

Implementa firma XMLDSig Enveloped con propiedades XAdES:
- Reference URI="#comprobante" con transform enveloped-signature
- Reference a SignedProperties (Type=http://uri.etsi.org/01903#SignedProperties)
- CanonicalizationMethod C14N 1.0
- RSA-SHA1 por defecto (RSA-SHA256 opcional)
- X509Certificate + RSAKeyValue en KeyInfo
- SigningTime, SigningCertificate y, opcionalmente,
  SignatureProductionPlace y SignerRole

La construcción es en dos fases:
1. Esqueleto: árbol completo en el orden exigido, con los slots de
   DigestValue (documento y SignedProperties) y SignatureValue vacíos.
2. Relleno: digest del documento -> el esqueleto se anexa como último
   hijo de la raíz -> digest de SignedProperties -> firma de SignedInfo.

El SRI rechaza tags auto-cerrados: antes de serializar, todo elemento
vacío del documento (incluida la firma) se marca para usar par
apertura/cierre. Comentarios y PIs se conservan tal cual.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from lxml import etree

from .crypto_engine import DEFAULT_ALGORITHM, compute_digest, get_algorithm, int_to_base64, sign_bytes
from .exceptions import DigestError, FirmaError, InvalidOptionsError, MalformedDocumentError, SigningError
from .pkcs12_utils import SigningIdentity
from .xml_utils import (
    C14N_URI,
    CANONICALIZATION_C14N,
    CANONICALIZATION_MODES,
    ENVELOPED_SIGNATURE_URI,
    SIGNATURE_NSMAP,
    SIGNED_PROPERTIES_TYPE,
    XML_DECLARATION,
    ds,
    etsi,
    expand_empty_elements,
    make_parser,
    serialize_fragment,
    sri_timestamp,
    to_bytes,
)

logger = logging.getLogger(__name__)

# Identificadores fijos: las Reference los direccionan por Id
SIGNATURE_ID = "Signature"
SIGNATURE_VALUE_ID = "SignatureValue"
KEY_INFO_ID = "KeyInfo"
OBJECT_ID = "Object"
SIGNED_PROPERTIES_ID = "SignedProperties"
DOCUMENT_REFERENCE_URI = "#comprobante"


@dataclass(frozen=True)
class ProductionPlace:
    """Lugar de producción de la firma (etsi:SignatureProductionPlace)"""
    city: str
    state: str
    code: str
    country: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductionPlace":
        """
        Raises:
            InvalidOptionsError: Si data no es un objeto {city, state, code, country}
        """
        if not isinstance(data, Mapping):
            raise InvalidOptionsError(
                f"productionPlace debe ser un objeto {{city, state, code, country}}, no {type(data).__name__}"
            )
        return cls(
            city=str(data.get("city", "")),
            state=str(data.get("state", "")),
            code=str(data.get("code", "")),
            country=str(data.get("country", "")),
        )


def _signer_roles(roles: Any) -> Optional[List[str]]:
    """signerRole: {claimed: [...]}, lista de roles o un rol suelto"""
    if isinstance(roles, Mapping):
        roles = roles.get("claimed")
    if not roles:
        return None
    if isinstance(roles, str):
        return [roles]
    if not isinstance(roles, (list, tuple)) or not all(isinstance(r, str) for r in roles):
        raise InvalidOptionsError("signerRole debe ser una lista de roles (texto) o {claimed: [...]}")
    return list(roles)


@dataclass
class SignatureOptions:
    """
    Opciones de firma.

    production_place y signer_roles son opcionales: si no se definen,
    los bloques XAdES correspondientes se omiten.
    signing_time permite fijar la hora de firma (tests, re-firmas).
    """
    algorithm: str = DEFAULT_ALGORITHM
    production_place: Optional[ProductionPlace] = None
    signer_roles: Optional[List[str]] = None
    signing_time: Optional[datetime] = None
    canonicalization: str = CANONICALIZATION_C14N

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SignatureOptions":
        """
        Construye opciones desde un dict estilo API:
        {algorithm, productionPlace: {city, state, code, country},
         signerRole: {claimed: [...]} | [...], canonicalization}

        Raises:
            InvalidOptionsError: Campo con tipo o valor inválido
        """
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidOptionsError(f"Las opciones deben ser un objeto, no {type(data).__name__}")

        algorithm = data.get("algorithm") or DEFAULT_ALGORITHM
        try:
            get_algorithm(algorithm)
        except DigestError as e:
            raise InvalidOptionsError(str(e)) from e

        canonicalization = data.get("canonicalization") or CANONICALIZATION_C14N
        if canonicalization not in CANONICALIZATION_MODES:
            raise InvalidOptionsError(f"Modo de canonicalización inválido: {canonicalization}")

        place = data.get("productionPlace") or data.get("production_place")

        return cls(
            algorithm=algorithm,
            production_place=ProductionPlace.from_dict(place) if place else None,
            signer_roles=_signer_roles(data.get("signerRole") or data.get("signer_roles")),
            canonicalization=canonicalization,
        )


@dataclass
class SignatureSkeleton:
    """Handles a los nodos del subárbol Signature que se rellenan en la fase 2"""
    signature: etree._Element
    signed_info: etree._Element
    document_digest: etree._Element
    properties_digest: etree._Element
    signature_value: etree._Element
    signed_properties: etree._Element


def _sub(parent: etree._Element, tag: etree.QName, text: Optional[str] = None, **attribs: str) -> etree._Element:
    """SubElement que conserva el orden de atributos dado"""
    element = etree.SubElement(parent, tag)
    for name, value in attribs.items():
        element.set(name, value)
    if text is not None:
        element.text = text
    return element


def parse_document(xml_content: Union[str, bytes]) -> etree._ElementTree:
    """
    Parsea el documento a firmar (copia privada por llamada).

    Raises:
        MalformedDocumentError: Documento vacío, mal formado o con más de una raíz
    """
    try:
        data = to_bytes(xml_content)
    except TypeError as e:
        raise MalformedDocumentError(str(e)) from e

    if not data.strip():
        raise MalformedDocumentError("El documento está vacío: no hay elemento raíz para firmar")

    # Un str ya viene decodificado: se ignora el encoding que declare
    parser = make_parser("utf-8") if isinstance(xml_content, str) else make_parser()
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        if "Extra content at the end of the document" in str(e):
            raise MalformedDocumentError(
                "El documento tiene más de un elemento raíz; se espera exactamente uno"
            ) from e
        raise MalformedDocumentError(f"El documento no es un XML bien formado: {str(e)}") from e

    if root.find(ds("Signature")) is not None:
        raise MalformedDocumentError("El documento ya contiene un elemento ds:Signature")

    return root.getroottree()


def build_skeleton(identity: SigningIdentity, options: SignatureOptions) -> SignatureSkeleton:
    """
    Fase 1: construye el subárbol ds:Signature completo.

    Quedan vacíos: DigestValue del documento, DigestValue de
    SignedProperties y SignatureValue.
    """
    suite = get_algorithm(options.algorithm)

    signature = etree.Element(ds("Signature"), nsmap=SIGNATURE_NSMAP)
    signature.set("Id", SIGNATURE_ID)

    # SignedInfo
    signed_info = _sub(signature, ds("SignedInfo"))
    _sub(signed_info, ds("CanonicalizationMethod"), Algorithm=C14N_URI)
    _sub(signed_info, ds("SignatureMethod"), Algorithm=suite.signature_uri)

    # Reference al comprobante
    reference = _sub(signed_info, ds("Reference"), URI=DOCUMENT_REFERENCE_URI)
    transforms = _sub(reference, ds("Transforms"))
    _sub(transforms, ds("Transform"), Algorithm=ENVELOPED_SIGNATURE_URI)
    _sub(reference, ds("DigestMethod"), Algorithm=suite.digest_uri)
    document_digest = _sub(reference, ds("DigestValue"), "")

    # Reference a SignedProperties
    props_reference = _sub(
        signed_info,
        ds("Reference"),
        Type=SIGNED_PROPERTIES_TYPE,
        URI=f"#{SIGNED_PROPERTIES_ID}",
    )
    _sub(props_reference, ds("DigestMethod"), Algorithm=suite.digest_uri)
    properties_digest = _sub(props_reference, ds("DigestValue"), "")

    # SignatureValue
    signature_value = _sub(signature, ds("SignatureValue"), "", Id=SIGNATURE_VALUE_ID)

    # KeyInfo
    key_info = _sub(signature, ds("KeyInfo"), Id=KEY_INFO_ID)
    x509_data = _sub(key_info, ds("X509Data"))
    _sub(x509_data, ds("X509Certificate"), identity.certificate_base64)
    key_value = _sub(key_info, ds("KeyValue"))
    rsa_key_value = _sub(key_value, ds("RSAKeyValue"))
    _sub(rsa_key_value, ds("Modulus"), int_to_base64(identity.modulus))
    _sub(rsa_key_value, ds("Exponent"), int_to_base64(identity.exponent))

    # Object -> QualifyingProperties -> SignedProperties
    obj = _sub(signature, ds("Object"), Id=OBJECT_ID)
    qualifying = _sub(obj, etsi("QualifyingProperties"), Target=f"#{SIGNATURE_ID}")
    signed_properties = _sub(qualifying, etsi("SignedProperties"), Id=SIGNED_PROPERTIES_ID)
    signed_sig_props = _sub(signed_properties, etsi("SignedSignatureProperties"))

    _sub(signed_sig_props, etsi("SigningTime"), sri_timestamp(options.signing_time))

    signing_cert = _sub(signed_sig_props, etsi("SigningCertificate"))
    cert = _sub(signing_cert, etsi("Cert"))
    cert_digest = _sub(cert, etsi("CertDigest"))
    _sub(cert_digest, ds("DigestMethod"), Algorithm=suite.digest_uri)
    _sub(cert_digest, ds("DigestValue"), identity.certificate_digest(suite.name))
    issuer_serial = _sub(cert, etsi("IssuerSerial"))
    _sub(issuer_serial, ds("X509IssuerName"), identity.issuer_name)
    _sub(issuer_serial, ds("X509SerialNumber"), str(identity.serial_number))

    place = options.production_place
    if place is not None:
        production_place = _sub(signed_sig_props, etsi("SignatureProductionPlace"))
        _sub(production_place, etsi("City"), place.city)
        _sub(production_place, etsi("StateOrProvince"), place.state)
        _sub(production_place, etsi("PostalCode"), place.code)
        _sub(production_place, etsi("CountryName"), place.country)

    if options.signer_roles:
        signer_role = _sub(signed_sig_props, etsi("SignerRole"))
        claimed_roles = _sub(signer_role, etsi("ClaimedRoles"))
        for role in options.signer_roles:
            _sub(claimed_roles, etsi("ClaimedRole"), str(role))

    return SignatureSkeleton(
        signature=signature,
        signed_info=signed_info,
        document_digest=document_digest,
        properties_digest=properties_digest,
        signature_value=signature_value,
        signed_properties=signed_properties,
    )


def fill_skeleton(
    skeleton: SignatureSkeleton,
    root: etree._Element,
    identity: SigningIdentity,
    options: SignatureOptions,
) -> None:
    """
    Fase 2: rellena los slots en orden de dependencia.

    1. Digest del comprobante (sin la firma, equivalente al transform enveloped)
    2. Se anexa ds:Signature como último hijo de la raíz
    3. Digest de SignedProperties (ya en su contexto final)
    4. Firma de SignedInfo (contiene ambos digests)
    """
    algorithm = options.algorithm
    mode = options.canonicalization

    skeleton.document_digest.text = compute_digest(serialize_fragment(root, mode), algorithm)

    root.append(skeleton.signature)

    skeleton.properties_digest.text = compute_digest(
        serialize_fragment(skeleton.signed_properties, mode), algorithm
    )

    skeleton.signature_value.text = sign_bytes(
        serialize_fragment(skeleton.signed_info, mode), identity.private_key, algorithm
    )


def serialize_signed_document(tree: etree._ElementTree) -> str:
    """Serializa el documento firmado: UTF-8, sin tags auto-cerrados"""
    expand_empty_elements(tree.getroot())
    body = etree.tostring(tree, encoding="UTF-8", xml_declaration=False).decode("utf-8")
    return f"{XML_DECLARATION}\n{body}"


def build_signature(
    document: Union[str, bytes],
    identity: Optional[SigningIdentity],
    options: Optional[SignatureOptions] = None,
) -> str:
    """
    Firma un comprobante con XAdES-BES.

    Args:
        document: XML del comprobante (un único elemento raíz)
        identity: Identidad de firma cargada
        options: Opciones de firma (por defecto SHA-1, sin bloques opcionales)

    Returns:
        XML firmado como texto UTF-8

    Raises:
        SigningError: Sin identidad cargada o fallo de digest/firma
        MalformedDocumentError: Documento mal formado o sin raíz única
    """
    if identity is None:
        raise SigningError("Debe cargar un certificado antes de firmar")

    options = options or SignatureOptions()
    if options.canonicalization not in CANONICALIZATION_MODES:
        raise SigningError(f"Modo de canonicalización inválido: {options.canonicalization}")
    get_algorithm(options.algorithm)

    tree = parse_document(document)
    root = tree.getroot()

    try:
        skeleton = build_skeleton(identity, options)
        fill_skeleton(skeleton, root, identity, options)
    except FirmaError:
        raise
    except Exception as e:
        raise SigningError(f"Error en la firma: {str(e)}") from e

    signed_xml = serialize_signed_document(tree)
    logger.info(
        f"Comprobante firmado ({get_algorithm(options.algorithm).name}, "
        f"canonicalización={options.canonicalization}, raíz=<{etree.QName(root).localname}>)"
    )
    return signed_xml


class XadesSigner:
    """
    Firmador XAdES-BES que comparte una identidad ya cargada.

    La identidad es inmutable; varias firmas pueden ejecutarse en paralelo
    con el mismo firmador porque cada llamada parsea su propio árbol.
    """

    def __init__(self, identity: Optional[SigningIdentity] = None):
        self.identity = identity

    @property
    def is_loaded(self) -> bool:
        return self.identity is not None

    def sign(self, xml_content: Union[str, bytes], options: Optional[SignatureOptions] = None) -> str:
        """Firma el contenido XML y retorna el XML firmado"""
        return build_signature(xml_content, self.identity, options)

    def sign_file(
        self,
        input_path: Union[str, Path],
        output_path: Union[str, Path],
        options: Optional[SignatureOptions] = None,
    ) -> str:
        """
        Firma un archivo XML y guarda el resultado.

        El archivo de salida solo se escribe si la firma fue exitosa.
        """
        logger.info(f"Firmando documento: {input_path}")
        try:
            with open(input_path, "rb") as f:
                xml_content = f.read()
        except OSError as e:
            raise SigningError(f"No se pudo leer el documento: {str(e)}") from e

        signed_xml = self.sign(xml_content, options)

        try:
            with open(output_path, "w", encoding="utf-8", newline="") as f:
                f.write(signed_xml)
        except OSError as e:
            raise SigningError(f"No se pudo guardar el documento firmado: {str(e)}") from e

        logger.info(f"Documento firmado guardado en: {output_path}")
        return signed_xml
