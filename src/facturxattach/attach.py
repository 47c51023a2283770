# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Core logic for turning a PDF into a Factur-X hybrid document."""

# Standard Library
import hashlib
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

# Third Party
import pikepdf
from pikepdf import Array, Dictionary, Name, Pdf, String

# Local
from .color_profile import add_output_intent
from .exceptions import (
    AttachmentError,
    PDFParseError,
    UnsupportedPDFError,
    VeraPDFError,
)
from .metadata import detect_facturx_level, write_facturx_metadata
from .utils import REQUIRED_PDF_VERSION, is_pdf_encrypted, pdf_date, read_file_bytes
from .verapdf import validate_with_verapdf

logger = logging.getLogger(__name__)

FACTURX_FILENAME = "facturx.xml"
FACTURX_DESCRIPTION = "Factur-X XML"
XML_MIME_TYPE = "application/xml"


@dataclass
class AttachResult:
    """Result of attaching a Factur-X XML to a PDF.

    Attributes:
        input_path: Path to the input PDF.
        output_path: Path to the written Factur-X PDF.
        xml_path: Path to the attached XML.
        attachment_name: File name of the embedded XML.
        output_intent_added: False if the input already had an output intent.
        xmp_written: True if Factur-X XMP metadata was written.
        facturx_level: Factur-X level used for the XMP metadata.
        pdf_sha256: SHA-256 hex digest of the output PDF.
        xml_sha256: SHA-256 hex digest of the embedded XML.
        warnings: Warnings collected along the way.
        processing_time: Processing time in seconds.
        validation_failed: True if veraPDF validation failed.
    """

    input_path: Path
    output_path: Path
    xml_path: Path
    attachment_name: str
    output_intent_added: bool = False
    xmp_written: bool = False
    facturx_level: str | None = None
    pdf_sha256: str | None = None
    xml_sha256: str | None = None
    warnings: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    validation_failed: bool = False


def open_pdf(path: Path) -> Pdf:
    """Opens an existing PDF for modification.

    Args:
        path: Path to the input PDF.

    Returns:
        Open pikepdf Pdf. The caller owns it and must close it.

    Raises:
        FileNotFoundError: If the file does not exist.
        PDFParseError: If the file is not a well-formed PDF.
        UnsupportedPDFError: If the PDF is encrypted.
    """
    logger.debug("Opening PDF: %s", path)
    try:
        pdf = pikepdf.open(path)
    except pikepdf.PasswordError as e:
        raise UnsupportedPDFError(f"PDF is password protected: {path}") from e
    except pikepdf.PdfError as e:
        raise PDFParseError(f"Could not parse PDF {path}: {e}") from e

    if is_pdf_encrypted(pdf):
        pdf.close()
        raise UnsupportedPDFError(f"PDF is encrypted and cannot be used: {path}")

    return pdf


def embed_xml_data(
    pdf: Pdf,
    data: bytes,
    attachment_name: str = FACTURX_FILENAME,
    description: str = FACTURX_DESCRIPTION,
) -> Dictionary:
    """Embeds XML bytes as the document's Factur-X attachment.

    The file specification becomes the only entry of a new
    ``/EmbeddedFiles`` name tree and the only entry of ``/Root/AF``.
    Existing attachments and associated files are dropped.

    Args:
        pdf: Opened pikepdf PDF object (modified in place).
        data: Raw XML bytes.
        attachment_name: File name shown by viewers.
        description: Value of the file specification's ``/Desc``.

    Returns:
        The indirect file specification dictionary.
    """
    ef_stream = pdf.make_stream(data)
    ef_stream[Name.Type] = Name.EmbeddedFile
    ef_stream[Name.Subtype] = Name("/" + XML_MIME_TYPE)
    ef_stream[Name.Params] = Dictionary(
        Size=len(data),
        ModDate=pdf_date(),
        CheckSum=String(hashlib.md5(data).digest()),
    )

    filespec = pdf.make_indirect(
        Dictionary(
            Type=Name.Filespec,
            F=attachment_name,
            UF=attachment_name,
            Desc=description,
            EF=Dictionary(F=ef_stream, UF=ef_stream),
            AFRelationship=Name.Data,
        )
    )

    if "/Names" not in pdf.Root:
        pdf.Root.Names = Dictionary()
    elif "/EmbeddedFiles" in pdf.Root.Names:
        logger.debug("Replacing existing /EmbeddedFiles name tree")
    pdf.Root.Names.EmbeddedFiles = Dictionary(
        Names=Array([String(attachment_name), filespec])
    )

    if "/AF" in pdf.Root:
        logger.debug("Replacing existing /Root/AF")
    pdf.Root.AF = Array([filespec])

    logger.info(
        "Embedded %s (%d bytes, AFRelationship=Data)", attachment_name, len(data)
    )
    return filespec


def embed_xml(
    pdf: Pdf,
    xml_path: Path,
    attachment_name: str = FACTURX_FILENAME,
    description: str = FACTURX_DESCRIPTION,
) -> Dictionary:
    """Reads an XML file and embeds it as the Factur-X attachment.

    Raises:
        FileNotFoundError: If the XML file does not exist.
    """
    data = read_file_bytes(xml_path)
    return embed_xml_data(pdf, data, attachment_name, description)


def set_attachments_page_mode(pdf: Pdf) -> None:
    """Makes viewers open the attachments panel by default."""
    pdf.Root.PageMode = Name.UseAttachments


def save_pdf(pdf: Pdf, output_path: Path) -> None:
    """Writes the document to ``output_path``.

    The file is first written next to the destination and then renamed
    over it, so a failed save leaves no partial output behind.

    Args:
        pdf: Opened pikepdf PDF object.
        output_path: Destination path.

    Raises:
        OSError: If the destination is not writable.
    """
    logger.debug("Saving PDF: %s", output_path)
    fd, tmp_name = tempfile.mkstemp(
        suffix=".pdf",
        prefix=f".{output_path.stem}_",
        dir=output_path.parent,
    )
    os.close(fd)
    tmp = Path(tmp_name)
    try:
        # Keep output non-linearized; PDF/A-3 is based on PDF 1.7.
        pdf.save(
            tmp,
            linearize=False,
            force_version=REQUIRED_PDF_VERSION,
            deterministic_id=True,
        )
        # mkstemp creates the file with mode 0600
        os.chmod(tmp, 0o644)
        os.replace(tmp, output_path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def attach_facturx(
    input_path: Path,
    xml_path: Path,
    output_path: Path,
    icc_path: Path,
    *,
    attachment_name: str = FACTURX_FILENAME,
    description: str = FACTURX_DESCRIPTION,
    write_xmp: bool = False,
    facturx_level: str | None = None,
    validate: bool = False,
) -> AttachResult:
    """Produces a Factur-X PDF from a PDF, an invoice XML and an ICC profile.

    Steps: load the PDF, embed the XML, add an output intent if none
    exists, set the attachments page mode, optionally write Factur-X XMP
    metadata, and save.

    Args:
        input_path: Path to the input PDF.
        xml_path: Path to the invoice XML.
        output_path: Path for the output PDF.
        icc_path: Path to the ICC profile used for the output intent.
        attachment_name: File name of the embedded XML.
        description: Description of the embedded XML.
        write_xmp: If True, write Factur-X XMP metadata.
        facturx_level: Factur-X level for the XMP metadata. Detected
            from the XML when None.
        validate: If True, the output is validated with veraPDF.

    Returns:
        AttachResult with details about the written file.

    Raises:
        FileNotFoundError: If an input file does not exist.
        OSError: If the output cannot be written.
        PDFParseError: If the input is not a well-formed PDF.
        UnsupportedPDFError: If the input PDF is encrypted.
        MetadataError: If the Factur-X level cannot be determined.
        AttachmentError: If pikepdf fails while modifying the document.
    """
    start_time = time.perf_counter()
    warnings: list[str] = []

    if input_path.resolve() == output_path.resolve():
        raise AttachmentError(f"Input and output paths must differ: {input_path}")

    logger.info("Attaching %s to %s -> %s", xml_path, input_path, output_path)

    with open_pdf(input_path) as pdf:
        try:
            xml_data = read_file_bytes(xml_path)
            embed_xml_data(pdf, xml_data, attachment_name, description)

            output_intent_added = add_output_intent(pdf, icc_path, warnings)

            set_attachments_page_mode(pdf)

            level = None
            if write_xmp:
                level = facturx_level or detect_facturx_level(xml_data)
                write_facturx_metadata(pdf, level, attachment_name)

            save_pdf(pdf, output_path)
        except pikepdf.PdfError as e:
            error_msg = f"PDF processing error: {e}"
            logger.error(error_msg)
            raise AttachmentError(error_msg) from e

    processing_time = time.perf_counter() - start_time

    result = AttachResult(
        input_path=input_path,
        output_path=output_path,
        xml_path=xml_path,
        attachment_name=attachment_name,
        output_intent_added=output_intent_added,
        xmp_written=write_xmp,
        facturx_level=level,
        pdf_sha256=_sha256_file(output_path),
        xml_sha256=hashlib.sha256(xml_data).hexdigest(),
        warnings=warnings,
        processing_time=processing_time,
    )

    if validate:
        logger.debug("Validating output with veraPDF")
        try:
            verapdf_result = validate_with_verapdf(output_path, flavour="3b")
        except VeraPDFError as e:
            logger.warning("veraPDF validation not available: %s", e)
            warnings.append("Validation skipped: veraPDF not available")
            verapdf_result = None

        if verapdf_result is not None and not verapdf_result.compliant:
            result.validation_failed = True
            for error in verapdf_result.errors:
                warnings.append(f"Validation: {error}")

    logger.info(
        "Factur-X PDF written: %s (%.2f seconds)", output_path, processing_time
    )
    return result
