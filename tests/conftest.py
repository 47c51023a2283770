# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Pytest fixtures for the facturxattach test suite."""

import logging
from io import BytesIO
from pathlib import Path

import pikepdf
import pytest
from pikepdf import Array, Dictionary, Name, Pdf

# -- Global PDF tracker --

_tracked_pdfs: list[Pdf] = []


@pytest.fixture(autouse=True)
def _auto_close_pdfs():
    """Close all tracked PDF objects after each test."""
    yield
    for pdf in reversed(_tracked_pdfs):
        try:
            pdf.close()
        except Exception:
            pass
    _tracked_pdfs.clear()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by setup_logging during a test."""
    yield
    logging.getLogger("facturxattach").handlers.clear()


def new_pdf(**kwargs) -> Pdf:
    """Create a tracked Pdf (auto-closed after test)."""
    pdf = Pdf.new(**kwargs)
    _tracked_pdfs.append(pdf)
    return pdf


def open_pdf(source, **kwargs) -> Pdf:
    """Open a tracked Pdf (auto-closed after test)."""
    pdf = Pdf.open(source, **kwargs)
    _tracked_pdfs.append(pdf)
    return pdf


def make_icc_profile(
    color_space: bytes = b"RGB ",
    device_class: bytes = b"mntr",
    version: int = 2,
) -> bytes:
    """Build a minimal ICC profile: 128-byte header plus an empty tag table."""
    size = 132
    header = bytearray(size)
    header[0:4] = size.to_bytes(4, "big")
    header[8] = version
    header[12:16] = device_class
    header[16:20] = color_space
    header[20:24] = b"XYZ "
    header[36:40] = b"acsp"
    return bytes(header)


def make_cii_invoice(guideline: str = "urn:factur-x.eu:1p0:basic") -> bytes:
    """Minimal CII invoice carrying a guideline identifier."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<rsm:CrossIndustryInvoice"
        ' xmlns:rsm="urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"'
        ' xmlns:ram="urn:un:unece:uncefact:data:standard:'
        'ReusableAggregateBusinessInformationEntity:100">\n'
        "  <rsm:ExchangedDocumentContext>\n"
        "    <ram:GuidelineSpecifiedDocumentContextParameter>\n"
        f"      <ram:ID>{guideline}</ram:ID>\n"
        "    </ram:GuidelineSpecifiedDocumentContextParameter>\n"
        "  </rsm:ExchangedDocumentContext>\n"
        "  <rsm:ExchangedDocument>\n"
        "    <ram:ID>INV-2024-0042</ram:ID>\n"
        "    <ram:TypeCode>380</ram:TypeCode>\n"
        "  </rsm:ExchangedDocument>\n"
        "</rsm:CrossIndustryInvoice>\n"
    ).encode("utf-8")


# -- Fixtures --


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Temporary directory for tests."""
    return tmp_path


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal valid PDF as bytes.

    Returns:
        PDF data as bytes.
    """
    pdf = new_pdf()
    page = pikepdf.Page(Dictionary(Type=Name.Page, MediaBox=Array([0, 0, 612, 792])))
    pdf.pages.append(page)

    buffer = BytesIO()
    pdf.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def sample_pdf(tmp_dir: Path, sample_pdf_bytes: bytes) -> Path:
    """Minimal valid PDF on disk."""
    pdf_path = tmp_dir / "sample.pdf"
    pdf_path.write_bytes(sample_pdf_bytes)
    return pdf_path


@pytest.fixture
def sample_xml_bytes() -> bytes:
    """Factur-X BASIC invoice XML."""
    return make_cii_invoice()


@pytest.fixture
def sample_xml(tmp_dir: Path, sample_xml_bytes: bytes) -> Path:
    """Factur-X invoice XML on disk."""
    xml_path = tmp_dir / "invoice.xml"
    xml_path.write_bytes(sample_xml_bytes)
    return xml_path


@pytest.fixture
def sample_icc(tmp_dir: Path) -> Path:
    """Minimal sRGB-like ICC profile on disk."""
    icc_path = tmp_dir / "sRGB.icc"
    icc_path.write_bytes(make_icc_profile())
    return icc_path


@pytest.fixture
def encrypted_pdf(tmp_dir: Path) -> Path:
    """Encrypted PDF for error tests."""
    pdf = new_pdf()
    page = pikepdf.Page(Dictionary(Type=Name.Page, MediaBox=Array([0, 0, 612, 792])))
    pdf.pages.append(page)

    encrypted_path = tmp_dir / "encrypted.pdf"
    pdf.save(encrypted_path, encryption=pikepdf.Encryption(owner="testpassword"))
    return encrypted_path


@pytest.fixture
def malformed_pdf(tmp_dir: Path) -> Path:
    """File with a .pdf suffix that is not a PDF."""
    path = tmp_dir / "broken.pdf"
    path.write_bytes(b"This is just some text, not a PDF document.\n")
    return path


@pytest.fixture
def pdf_with_output_intent(tmp_dir: Path) -> Path:
    """PDF that already declares a PDF/A output intent."""
    pdf = new_pdf()
    page = pikepdf.Page(Dictionary(Type=Name.Page, MediaBox=Array([0, 0, 612, 792])))
    pdf.pages.append(page)

    icc_stream = pdf.make_stream(make_icc_profile())
    icc_stream[Name.N] = 3
    pdf.Root.OutputIntents = Array(
        [
            pdf.make_indirect(
                Dictionary(
                    Type=Name.OutputIntent,
                    S=Name.GTS_PDFA1,
                    OutputConditionIdentifier="Existing profile",
                    DestOutputProfile=icc_stream,
                )
            )
        ]
    )

    pdf_path = tmp_dir / "with_output_intent.pdf"
    pdf.save(pdf_path)
    return pdf_path


@pytest.fixture
def pdf_with_attachment(tmp_dir: Path) -> Path:
    """PDF with an unrelated embedded file, /AF entry and named destination."""
    pdf = new_pdf()
    page = pikepdf.Page(Dictionary(Type=Name.Page, MediaBox=Array([0, 0, 612, 792])))
    pdf.pages.append(page)

    ef_stream = pdf.make_stream(b"old attachment")
    filespec = pdf.make_indirect(
        Dictionary(
            Type=Name.Filespec,
            F="notes.txt",
            UF="notes.txt",
            EF=Dictionary(F=ef_stream, UF=ef_stream),
            AFRelationship=Name.Supplement,
        )
    )
    pdf.Root.Names = Dictionary(
        EmbeddedFiles=Dictionary(Names=Array(["notes.txt", filespec])),
        Dests=Dictionary(
            Names=Array(["start", Array([pdf.pages[0].obj, Name.Fit])])
        ),
    )
    pdf.Root.AF = Array([filespec])

    pdf_path = tmp_dir / "with_attachment.pdf"
    pdf.save(pdf_path)
    return pdf_path
