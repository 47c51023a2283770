# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Utility functions for facturxattach."""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from pikepdf import Pdf

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# PDF/A-3 is based on ISO 32000-1 (PDF 1.7)
REQUIRED_PDF_VERSION = "1.7"


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Configures logging for facturxattach.

    Args:
        verbose: If True, DEBUG level is used.
        quiet: If True, only ERROR and higher are output.
            Takes precedence over verbose.

    Returns:
        Configured logger for facturxattach.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    package_logger = logging.getLogger("facturxattach")
    package_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)

    logger.debug("Logging configured with level: %s", logging.getLevelName(level))
    return package_logger


def is_pdf_encrypted(pdf: Pdf) -> bool:
    """Checks if a PDF is encrypted.

    Args:
        pdf: Opened pikepdf PDF object.

    Returns:
        True if the PDF is encrypted.
    """
    return pdf.is_encrypted


def read_file_bytes(path: Path) -> bytes:
    """Reads a whole input file.

    Raises:
        FileNotFoundError: If the path does not exist.
    """
    with open(path, "rb") as f:
        data = f.read()
    logger.debug("Read %d bytes from %s", len(data), path)
    return data


def pdf_date(dt: datetime | None = None) -> str:
    """Formats a datetime as a PDF date string in UTC.

    Args:
        dt: Datetime to format. Defaults to now.

    Returns:
        Date string like ``D:20240115120000+00'00'``.
    """
    if dt is None:
        dt = datetime.now(UTC)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime("D:%Y%m%d%H%M%S+00'00'")


def xmp_date(dt: datetime | None = None) -> str:
    """Formats a datetime as an XMP date string in UTC."""
    if dt is None:
        dt = datetime.now(UTC)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S+00:00")
