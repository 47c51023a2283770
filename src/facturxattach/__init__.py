# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""facturxattach - Turn a PDF and an invoice XML into a Factur-X PDF."""

from importlib.metadata import PackageNotFoundError, version

from .attach import (
    AttachResult,
    attach_facturx,
    embed_xml,
    open_pdf,
    save_pdf,
    set_attachments_page_mode,
)
from .color_profile import add_output_intent, has_output_intent
from .exceptions import (
    AttachmentError,
    FacturXAttachError,
    MetadataError,
    PDFParseError,
    UnsupportedPDFError,
    VeraPDFError,
)

try:
    __version__ = version("facturxattach")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "__version__",
    "attach_facturx",
    "open_pdf",
    "embed_xml",
    "add_output_intent",
    "has_output_intent",
    "set_attachments_page_mode",
    "save_pdf",
    "AttachResult",
    "FacturXAttachError",
    "AttachmentError",
    "PDFParseError",
    "UnsupportedPDFError",
    "MetadataError",
    "VeraPDFError",
]
