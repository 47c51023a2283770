# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""PDF/A output intent handling.

A PDF/A document must declare the color profile it was authored for in
the catalog ``/OutputIntents`` array. This module reads an ICC profile
from disk and installs it as a ``/GTS_PDFA1`` output intent, unless the
document already carries one.
"""

import logging
from pathlib import Path

from pikepdf import Array, Dictionary, Name, Pdf

from .utils import read_file_bytes

logger = logging.getLogger(__name__)

# Identification written into every output intent we create
OUTPUT_CONDITION = "sRGB IEC61966-2.1"
REGISTRY_NAME = "http://www.color.org"

# ICC header data color space signature (bytes 16-19) -> /N
_ICC_COLOR_SPACE_COMPONENTS = {
    b"GRAY": 1,
    b"RGB ": 3,
    b"CMYK": 4,
}

_ALLOWED_DEVICE_CLASSES = frozenset({b"mntr", b"prtr", b"scnr", b"spac"})


def validate_icc_profile(profile_data: bytes) -> list[str]:
    """
    Check the ICC profile header for PDF/A-relevant problems.

    Args:
        profile_data: Raw ICC profile bytes.

    Returns:
        List of problems found; empty if the header looks valid.
    """
    # ICC profile must have at least 128-byte header
    if len(profile_data) < 128:
        return [f"ICC profile too short ({len(profile_data)} bytes)"]

    problems: list[str] = []

    if profile_data[36:40] != b"acsp":
        problems.append("ICC profile lacks 'acsp' signature")

    declared_size = int.from_bytes(profile_data[0:4], byteorder="big")
    if declared_size != len(profile_data):
        problems.append(
            f"ICC profile declares {declared_size} bytes "
            f"but contains {len(profile_data)}"
        )

    # Only v2.x or v4.x profiles are allowed in PDF/A
    major_version = profile_data[8]
    if major_version not in (2, 4):
        problems.append(f"Unsupported ICC profile version {major_version}")

    device_class = profile_data[12:16]
    if device_class not in _ALLOWED_DEVICE_CLASSES:
        problems.append(
            f"ICC device class {device_class!r} not allowed for output intents"
        )

    return problems


def get_icc_components(profile_data: bytes) -> int:
    """
    Number of color components declared by an ICC profile header.

    Falls back to 3 (RGB) when the header is truncated or the color
    space is not one of GRAY, RGB or CMYK.
    """
    return _ICC_COLOR_SPACE_COMPONENTS.get(profile_data[16:20], 3)


def has_output_intent(pdf: Pdf) -> bool:
    """
    Check if PDF already has an OutputIntent.

    Args:
        pdf: pikepdf Pdf object.

    Returns:
        True if OutputIntents exists and is non-empty.
    """
    try:
        output_intents = pdf.Root.get("/OutputIntents")
        if output_intents is None:
            return False
        return len(output_intents) > 0
    except (KeyError, AttributeError, TypeError):
        return False


def create_output_intent(pdf: Pdf, profile_data: bytes) -> Dictionary:
    """
    Create a PDF/A OutputIntent dictionary around raw ICC bytes.

    Args:
        pdf: pikepdf Pdf object to create the profile stream in.
        profile_data: Raw ICC profile bytes.

    Returns:
        OutputIntent Dictionary ready to be added to the catalog.
    """
    icc_stream = pdf.make_stream(profile_data)
    icc_stream[Name.N] = get_icc_components(profile_data)

    return Dictionary(
        Type=Name.OutputIntent,
        S=Name.GTS_PDFA1,
        Info=OUTPUT_CONDITION,
        OutputCondition=OUTPUT_CONDITION,
        OutputConditionIdentifier=OUTPUT_CONDITION,
        RegistryName=REGISTRY_NAME,
        DestOutputProfile=icc_stream,
    )


def add_output_intent(
    pdf: Pdf,
    icc_path: Path,
    warnings: list[str] | None = None,
) -> bool:
    """
    Add an sRGB PDF/A output intent if the document has none.

    The ICC file is only opened when an output intent is actually needed,
    so re-running on an already annotated document neither reads the
    profile nor duplicates the entry.

    Args:
        pdf: pikepdf Pdf object to modify.
        icc_path: Path to the ICC profile.
        warnings: Optional list that receives profile header problems.

    Returns:
        True if an output intent was added, False if one already existed.

    Raises:
        FileNotFoundError: If an output intent is needed and the ICC
            profile does not exist.
    """
    if has_output_intent(pdf):
        logger.debug("OutputIntents already present, skipping")
        return False

    profile_data = read_file_bytes(icc_path)

    for problem in validate_icc_profile(profile_data):
        logger.warning("%s: %s", icc_path.name, problem)
        if warnings is not None:
            warnings.append(problem)

    output_intent = create_output_intent(pdf, profile_data)
    pdf.Root.OutputIntents = Array([pdf.make_indirect(output_intent)])

    logger.info(
        "OutputIntent added: %s (%d bytes ICC profile)",
        OUTPUT_CONDITION,
        len(profile_data),
    )
    return True
