# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Factur-X XMP metadata.

Factur-X validators look for the PDF/A-3 identification and for the
``fx:`` properties (declared through a PDF/A extension schema) in the
catalog XMP packet. Properties written by other tools are preserved.
"""

import logging
from datetime import datetime

import pikepdf
from lxml import etree

from .exceptions import MetadataError
from .utils import xmp_date

logger = logging.getLogger(__name__)

_SECURE_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)

NAMESPACES = {
    "x": "adobe:ns:meta/",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "xmp": "http://ns.adobe.com/xap/1.0/",
    "pdfaid": "http://www.aiim.org/pdfa/ns/id/",
    "pdfaExtension": "http://www.aiim.org/pdfa/ns/extension/",
    "pdfaSchema": "http://www.aiim.org/pdfa/ns/schema#",
    "pdfaProperty": "http://www.aiim.org/pdfa/ns/property#",
    "fx": "urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#",
}

# Namespaces of the CII invoice syntax
CII_NAMESPACES = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": (
        "urn:un:unece:uncefact:data:standard:"
        "ReusableAggregateBusinessInformationEntity:100"
    ),
}

# Factur-X level -> fx:ConformanceLevel value
FACTURX_LEVELS = {
    "minimum": "MINIMUM",
    "basicwl": "BASIC WL",
    "basic": "BASIC",
    "en16931": "EN 16931",
    "extended": "EXTENDED",
    "xrechnung": "XRECHNUNG",
}

FACTURX_VERSION = "1.0"

XMP_HEADER = b'<?xpacket begin="\xef\xbb\xbf" id="W5M0MpCehiHzreSzNTczkc9d"?>\n'
XMP_TRAILER = b'\n<?xpacket end="w"?>'

_RDF = NAMESPACES["rdf"]

# Properties written fresh on every run; existing values are dropped.
_MANAGED_ELEMENTS = {
    f"{{{NAMESPACES['pdfaid']}}}part",
    f"{{{NAMESPACES['pdfaid']}}}conformance",
    f"{{{NAMESPACES['pdfaid']}}}amd",
    f"{{{NAMESPACES['pdfaid']}}}rev",
    f"{{{NAMESPACES['xmp']}}}MetadataDate",
}

# (name, description) of the fx: properties declared in the extension schema
_FX_PROPERTIES = [
    ("DocumentFileName", "The name of the embedded XML document"),
    (
        "DocumentType",
        "The type of the hybrid document in capital letters, e.g. INVOICE or ORDER",
    ),
    (
        "Version",
        "The actual version of the standard applying to the embedded XML document",
    ),
    ("ConformanceLevel", "The conformance level of the embedded XML document"),
]


def _tag(prefix: str, name: str) -> str:
    return f"{{{NAMESPACES[prefix]}}}{name}"


def detect_facturx_level(xml_data: bytes) -> str:
    """Reads the Factur-X level from a CII invoice.

    The level is the last segment of the guideline URN in
    ``ExchangedDocumentContext/GuidelineSpecifiedDocumentContextParameter/ID``,
    e.g. ``urn:factur-x.eu:1p0:basic`` -> ``basic``. EN 16931 uses the bare
    ``urn:cen.eu:en16931:2017`` identifier.

    Args:
        xml_data: Raw invoice XML.

    Returns:
        Lower-case level key of FACTURX_LEVELS.

    Raises:
        MetadataError: If the XML is malformed or carries no known level.
    """
    try:
        root = etree.fromstring(xml_data, _SECURE_XML_PARSER)
    except etree.XMLSyntaxError as e:
        raise MetadataError(f"Invoice XML is not well-formed: {e}") from e

    ids = root.xpath(
        "//rsm:ExchangedDocumentContext"
        "/ram:GuidelineSpecifiedDocumentContextParameter/ram:ID",
        namespaces=CII_NAMESPACES,
    )
    if not ids or not (ids[0].text or "").strip():
        raise MetadataError(
            "Invoice XML has no "
            "GuidelineSpecifiedDocumentContextParameter/ID; "
            "pass the Factur-X level explicitly"
        )

    doc_id = ids[0].text.strip()
    if "xrechnung" in doc_id.lower():
        level = "xrechnung"
    else:
        parts = doc_id.split(":")
        level = parts[-1].lower()
        if level not in FACTURX_LEVELS and len(parts) > 1:
            level = parts[-2].lower()

    if level not in FACTURX_LEVELS:
        raise MetadataError(f"Unknown Factur-X guideline: '{doc_id}'")

    logger.info("Factur-X level is %s (autodetected)", level)
    return level


def _strip_xpacket_wrapper(content: bytes) -> bytes:
    """Strip XMP xpacket processing instructions and return inner content."""
    if b"<?xpacket" in content:
        start_idx = content.find(b"?>")
        if start_idx != -1:
            content = content[start_idx + 2 :]
        end_idx = content.rfind(b"<?xpacket")
        if end_idx != -1:
            content = content[:end_idx]
    return content.strip()


def _extract_existing_xmp(pdf: pikepdf.Pdf) -> etree._Element | None:
    """Read and parse existing catalog XMP metadata.

    Returns:
        Parsed XMP XML tree or None if not present or unparseable.
    """
    metadata = pdf.Root.get("/Metadata")
    if metadata is None:
        return None

    try:
        content = _strip_xpacket_wrapper(bytes(metadata.read_bytes()))
    except pikepdf.PdfError as e:
        logger.warning("Error reading existing XMP metadata: %s", e)
        return None
    if not content:
        return None

    try:
        return etree.fromstring(content, _SECURE_XML_PARSER)
    except etree.XMLSyntaxError as e:
        logger.warning("Existing XMP metadata is not well-formed, replacing: %s", e)
        return None


def _get_rdf_root(tree: etree._Element | None) -> tuple[etree._Element, etree._Element]:
    """Returns (xmpmeta, rdf:RDF) for an existing tree, creating what is missing."""
    if tree is not None:
        if tree.tag == _tag("rdf", "RDF"):
            xmpmeta = etree.Element(_tag("x", "xmpmeta"), nsmap={"x": NAMESPACES["x"]})
            xmpmeta.append(tree)
            return xmpmeta, tree
        rdf_root = tree.find(f"{{{_RDF}}}RDF")
        if rdf_root is not None:
            return tree, rdf_root

    xmpmeta = etree.Element(_tag("x", "xmpmeta"), nsmap={"x": NAMESPACES["x"]})
    rdf_root = etree.SubElement(xmpmeta, _tag("rdf", "RDF"), nsmap={"rdf": _RDF})
    return xmpmeta, rdf_root


def _remove_managed_properties(rdf_root: etree._Element) -> None:
    """Drop pdfaid/fx properties and the fx schema declaration."""
    fx_ns = NAMESPACES["fx"]

    for description in rdf_root.findall(f"{{{_RDF}}}Description"):
        for child in list(description):
            if not isinstance(child.tag, str):
                continue
            if child.tag in _MANAGED_ELEMENTS or child.tag.startswith(f"{{{fx_ns}}}"):
                description.remove(child)

        for attr in list(description.attrib):
            if attr in _MANAGED_ELEMENTS or attr.startswith(f"{{{fx_ns}}}"):
                del description.attrib[attr]

        # Previously declared fx extension schemas
        for li in description.findall(
            f"{_tag('pdfaExtension', 'schemas')}/{{{_RDF}}}Bag/{{{_RDF}}}li"
        ):
            uri = li.find(_tag("pdfaSchema", "namespaceURI"))
            if uri is not None and (uri.text or "").strip() == fx_ns:
                li.getparent().remove(li)

        if len(description) == 0 and set(description.attrib) <= {
            f"{{{_RDF}}}about"
        }:
            rdf_root.remove(description)


def _new_description(rdf_root: etree._Element, prefix: str) -> etree._Element:
    description = etree.SubElement(
        rdf_root,
        f"{{{_RDF}}}Description",
        nsmap={prefix: NAMESPACES[prefix]},
    )
    description.set(f"{{{_RDF}}}about", "")
    return description


def _text_element(parent: etree._Element, tag: str, text: str) -> etree._Element:
    elem = etree.SubElement(parent, tag)
    elem.text = text
    return elem


def _fx_schema_li(bag: etree._Element) -> etree._Element:
    """Append the PDF/A extension schema declaration for fx: to a rdf:Bag."""
    li = etree.SubElement(bag, f"{{{_RDF}}}li")
    li.set(f"{{{_RDF}}}parseType", "Resource")
    _text_element(li, _tag("pdfaSchema", "schema"), "Factur-X PDFA Extension Schema")
    _text_element(li, _tag("pdfaSchema", "namespaceURI"), NAMESPACES["fx"])
    _text_element(li, _tag("pdfaSchema", "prefix"), "fx")

    prop = etree.SubElement(li, _tag("pdfaSchema", "property"))
    seq = etree.SubElement(prop, f"{{{_RDF}}}Seq")
    for name, text in _FX_PROPERTIES:
        prop_li = etree.SubElement(seq, f"{{{_RDF}}}li")
        prop_li.set(f"{{{_RDF}}}parseType", "Resource")
        _text_element(prop_li, _tag("pdfaProperty", "name"), name)
        _text_element(prop_li, _tag("pdfaProperty", "valueType"), "Text")
        _text_element(prop_li, _tag("pdfaProperty", "category"), "external")
        _text_element(prop_li, _tag("pdfaProperty", "description"), text)
    return li


def _find_extension_bag(rdf_root: etree._Element) -> etree._Element:
    """Returns the existing pdfaExtension:schemas bag, creating one if needed."""
    bag = rdf_root.find(
        f"{{{_RDF}}}Description/{_tag('pdfaExtension', 'schemas')}/{{{_RDF}}}Bag"
    )
    if bag is not None:
        return bag

    description = etree.SubElement(
        rdf_root,
        f"{{{_RDF}}}Description",
        nsmap={
            "pdfaExtension": NAMESPACES["pdfaExtension"],
            "pdfaSchema": NAMESPACES["pdfaSchema"],
            "pdfaProperty": NAMESPACES["pdfaProperty"],
        },
    )
    description.set(f"{{{_RDF}}}about", "")
    schemas = etree.SubElement(description, _tag("pdfaExtension", "schemas"))
    return etree.SubElement(schemas, f"{{{_RDF}}}Bag")


def create_facturx_xmp(
    level: str,
    attachment_name: str,
    existing: etree._Element | None = None,
    now: datetime | None = None,
) -> bytes:
    """
    Build an XMP packet declaring PDF/A-3B and the Factur-X properties.

    Args:
        level: Factur-X level key (see FACTURX_LEVELS).
        attachment_name: File name of the embedded XML.
        existing: Parsed existing XMP to merge into, if any.
        now: Timestamp for xmp:MetadataDate. Defaults to now.

    Returns:
        Serialized XMP packet including xpacket wrapper.

    Raises:
        MetadataError: If the level is unknown.
    """
    level_key = level.lower().replace(" ", "").replace("_", "")
    if level_key not in FACTURX_LEVELS:
        raise MetadataError(
            f"Invalid Factur-X level: {level}. "
            f"Allowed: {', '.join(FACTURX_LEVELS)}"
        )

    xmpmeta, rdf_root = _get_rdf_root(existing)
    _remove_managed_properties(rdf_root)

    pdfaid = _new_description(rdf_root, "pdfaid")
    _text_element(pdfaid, _tag("pdfaid", "part"), "3")
    _text_element(pdfaid, _tag("pdfaid", "conformance"), "B")

    xmp = _new_description(rdf_root, "xmp")
    _text_element(xmp, _tag("xmp", "MetadataDate"), xmp_date(now))

    _fx_schema_li(_find_extension_bag(rdf_root))

    fx = _new_description(rdf_root, "fx")
    _text_element(fx, _tag("fx", "DocumentType"), "INVOICE")
    _text_element(fx, _tag("fx", "DocumentFileName"), attachment_name)
    _text_element(fx, _tag("fx", "Version"), FACTURX_VERSION)
    _text_element(fx, _tag("fx", "ConformanceLevel"), FACTURX_LEVELS[level_key])

    etree.cleanup_namespaces(xmpmeta)
    xml_bytes = etree.tostring(
        xmpmeta,
        encoding="utf-8",
        xml_declaration=False,
        pretty_print=True,
    )

    # Padding allows in-place editing by other tools
    padding_block = (b" " * 100 + b"\n") * 20

    return XMP_HEADER + xml_bytes + b"\n" + padding_block + XMP_TRAILER


def embed_xmp_metadata(pdf: pikepdf.Pdf, xmp: bytes) -> None:
    """
    Embed an XMP packet as the catalog metadata stream.

    Args:
        pdf: pikepdf Pdf object to modify.
        xmp: XMP metadata bytes.
    """
    metadata_stream = pikepdf.Stream(pdf, xmp)
    metadata_stream.Type = pikepdf.Name.Metadata
    metadata_stream.Subtype = pikepdf.Name.XML
    pdf.Root.Metadata = pdf.make_indirect(metadata_stream)
    logger.debug("XMP metadata embedded in PDF (%d bytes)", len(xmp))


def write_facturx_metadata(
    pdf: pikepdf.Pdf,
    level: str,
    attachment_name: str,
) -> None:
    """Merge the Factur-X XMP properties into the document metadata.

    Args:
        pdf: pikepdf Pdf object to modify.
        level: Factur-X level key (see FACTURX_LEVELS).
        attachment_name: File name of the embedded XML.

    Raises:
        MetadataError: If the level is unknown.
    """
    existing = _extract_existing_xmp(pdf)
    xmp = create_facturx_xmp(level, attachment_name, existing)
    embed_xmp_metadata(pdf, xmp)
    logger.info("Factur-X XMP metadata written (level %s)", level)
