"""
Utilidades XML para la firma XAdES-BES del SRI

- Namespaces y helpers de QName (ds / etsi)
- Parser lxml seguro (sin entidades externas ni red)
- Serialización de fragmentos según el modo de canonicalización
- Expansión de tags auto-cerrados (requisito del SRI)
- Timestamps en hora de Ecuador (GMT-5)
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from lxml import etree

# Namespaces
DS_NS = "http://www.w3.org/2000/09/xmldsig#"
ETSI_NS = "http://uri.etsi.org/01903/v1.3.2#"

SIGNATURE_NSMAP = {
    "ds": DS_NS,
    "etsi": ETSI_NS,
}

# URIs fijas
C14N_URI = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
ENVELOPED_SIGNATURE_URI = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
SIGNED_PROPERTIES_TYPE = "http://uri.etsi.org/01903#SignedProperties"

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

CANONICALIZATION_C14N = "c14n"
CANONICALIZATION_SERIALIZE = "serialize"
CANONICALIZATION_MODES = (CANONICALIZATION_C14N, CANONICALIZATION_SERIALIZE)

# Ecuador continental no tiene horario de verano
ECUADOR_TZ = timezone(timedelta(hours=-5))

# <tag attr="..."/>  (los valores de atributos pueden contener "/" y ">")
SELF_CLOSING_TAG_RE = re.compile(
    r"<([A-Za-z_][\w.\-]*(?::[A-Za-z_][\w.\-]*)?)"
    r"((?:\s+[^\s=/>]+\s*=\s*(?:\"[^\"]*\"|'[^']*'))*)"
    r"\s*/>"
)
# Comentarios, instrucciones de procesamiento (incluida la declaración) y CDATA
NON_MARKUP_RE = re.compile(r"<!--.*?-->|<\?.*?\?>|<!\[CDATA\[.*?\]\]>", re.DOTALL)
UTF8_DECLARATION_RE = re.compile(r"<\?xml[^>]*encoding\s*=\s*[\"']UTF-8[\"']", re.IGNORECASE)


def ds(tag: str) -> etree.QName:
    return etree.QName(DS_NS, tag)


def etsi(tag: str) -> etree.QName:
    return etree.QName(ETSI_NS, tag)


def to_bytes(content: Union[str, bytes]) -> bytes:
    """Normaliza el contenido XML a bytes UTF-8"""
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    raise TypeError(f"El contenido XML debe ser str o bytes, no {type(content).__name__}")


def make_parser(encoding: Optional[str] = None) -> etree.XMLParser:
    """
    Parser lxml que no resuelve entidades ni accede a la red.

    encoding fuerza el charset e ignora el declarado en el documento
    (texto ya convertido a UTF-8 con to_bytes).
    """
    return etree.XMLParser(resolve_entities=False, no_network=True, encoding=encoding)


def serialize_fragment(element: etree._Element, canonicalization: str = CANONICALIZATION_C14N) -> bytes:
    """
    Serializa un fragmento XML exactamente como se usa para digest/firma.

    Args:
        element: Elemento a serializar (en su contexto de documento)
        canonicalization: 'c14n' (C14N 1.0 inclusivo de lxml) o
                          'serialize' (serialización directa, sin canonicalizar)

    Returns:
        Bytes del fragmento
    """
    if canonicalization == CANONICALIZATION_C14N:
        return etree.tostring(element, method="c14n")
    if canonicalization == CANONICALIZATION_SERIALIZE:
        return etree.tostring(element, encoding="UTF-8", xml_declaration=False, with_tail=False)
    raise ValueError(
        f"Modo de canonicalización inválido: {canonicalization}. "
        f"Debe ser uno de {', '.join(CANONICALIZATION_MODES)}"
    )


def expand_empty_elements(root: etree._Element) -> None:
    """
    Marca los elementos vacíos para que lxml los serialice como par
    apertura/cierre: <a x="1"/> -> <a x="1"></a>.

    Trabaja sobre el árbol: comentarios, instrucciones de procesamiento
    y texto no se tocan, y la forma C14N del documento no cambia.
    """
    for element in root.iter(etree.Element):
        if element.text is None and len(element) == 0:
            element.text = ""


def has_self_closing_tags(xml: str) -> bool:
    """True si hay algún tag auto-cerrado fuera de comentarios, PIs y CDATA"""
    body = NON_MARKUP_RE.sub("", xml)
    return SELF_CLOSING_TAG_RE.search(body) is not None


def has_utf8_declaration(xml: str) -> bool:
    return UTF8_DECLARATION_RE.search(xml) is not None


def sri_timestamp(moment: Optional[datetime] = None) -> str:
    """
    Fecha/hora ISO 8601 con offset de Ecuador, p.ej. '2025-01-29T10:15:00-05:00'.

    Un datetime sin zona horaria se interpreta como hora local de Ecuador.
    """
    if moment is None:
        moment = datetime.now(ECUADOR_TZ)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=ECUADOR_TZ)
    else:
        moment = moment.astimezone(ECUADOR_TZ)
    return moment.replace(microsecond=0).isoformat()
