# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Custom exceptions for facturxattach."""


class FacturXAttachError(Exception):
    """Base exception for all facturxattach errors."""


class AttachmentError(FacturXAttachError):
    """Error while attaching the XML or writing the output."""


class PDFParseError(FacturXAttachError):
    """Input is not a well-formed PDF."""


class UnsupportedPDFError(FacturXAttachError):
    """PDF cannot be turned into a Factur-X document (e.g. encrypted)."""


class MetadataError(FacturXAttachError):
    """Factur-X XMP metadata could not be derived or written."""


class VeraPDFError(FacturXAttachError):
    """Error during veraPDF validation."""
