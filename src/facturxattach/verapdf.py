# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Optional PDF/A-3 validation of Factur-X output with veraPDF.

veraPDF is a Java-based CLI tool that must be installed externally:
https://verapdf.org/. Set ``VERAPDF_BIN`` to the executable (or the
directory containing it) when it is not on ``PATH``.
"""

# Standard Library
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from lxml import etree

# Local
from .exceptions import VeraPDFError

logger = logging.getLogger(__name__)

# Flavours that make sense for a Factur-X document
VALID_FLAVOURS = frozenset({"3a", "3b", "3u"})

DEFAULT_TIMEOUT = 300


def _get_verapdf_cmd() -> str:
    """Returns the veraPDF command from VERAPDF_BIN or falls back to 'verapdf'."""
    configured = os.environ.get("VERAPDF_BIN")
    if not configured:
        return "verapdf"
    if Path(configured).is_dir():
        return str(Path(configured) / "verapdf")
    return configured


@dataclass
class VeraPDFResult:
    """Result of veraPDF validation.

    Attributes:
        compliant: True if the PDF conforms to the validated flavour.
        flavour: Validated PDF/A flavour (e.g. "3b").
        passed_rules: Number of passed rules.
        failed_rules: Number of failed rules.
        errors: Failed rule descriptions.
        warnings: Report problems that are not rule failures.
    """

    compliant: bool
    flavour: str | None = None
    passed_rules: int = 0
    failed_rules: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def is_verapdf_available() -> bool:
    """Checks if veraPDF can be executed."""
    return shutil.which(_get_verapdf_cmd()) is not None


def _parse_verapdf_xml(xml_string: str) -> VeraPDFResult:
    """Parses the XML report printed by ``verapdf --format xml``."""
    result = VeraPDFResult(compliant=False)

    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        root = etree.fromstring(xml_string.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as e:
        logger.warning("Error parsing veraPDF XML: %s", e)
        result.errors.append(f"XML parsing error: {e}")
        return result

    # <report><jobs><job><validationReport>...
    validation_report = root.find(".//validationReport")
    if validation_report is None:
        logger.warning("No validationReport found in veraPDF XML")
        result.warnings.append("No validation report found in veraPDF result")
        task_result = root.find(".//taskResult")
        if task_result is not None and task_result.get("exceptionMessage"):
            result.errors.append(
                f"veraPDF error: {task_result.get('exceptionMessage')}"
            )
        return result

    result.compliant = validation_report.get("isCompliant", "false").lower() == "true"

    # profileName looks like "PDF/A-3B validation profile"
    profile_name = validation_report.get("profileName", "")
    if profile_name.upper().startswith("PDF/A-") and len(profile_name) >= 8:
        result.flavour = profile_name[6:8].lower()

    details = validation_report.find("details")
    if details is not None:
        try:
            result.passed_rules = int(details.get("passedRules", "0"))
            result.failed_rules = int(details.get("failedRules", "0"))
        except ValueError:
            pass

        for rule in details.findall(".//rule[@status='failed']"):
            clause = rule.get("clause", "")
            description_elem = rule.find("description")
            description = (
                description_elem.text if description_elem is not None else ""
            ) or ""
            error_msg = f"Rule {clause}: {description}" if clause else description
            if error_msg:
                result.errors.append(error_msg)

    return result


def validate_with_verapdf(
    path: Path,
    flavour: str = "3b",
    timeout: int = DEFAULT_TIMEOUT,
) -> VeraPDFResult:
    """Validates a PDF file with veraPDF.

    Args:
        path: Path to the PDF file to validate.
        flavour: PDF/A-3 flavour to validate against.
        timeout: Timeout in seconds.

    Returns:
        VeraPDFResult with the validation result.

    Raises:
        VeraPDFError: If veraPDF is not available, the flavour is
            invalid, or veraPDF itself fails.
    """
    flavour = flavour.lower()
    if flavour not in VALID_FLAVOURS:
        raise VeraPDFError(
            f"Invalid PDF/A flavour: '{flavour}'. "
            f"Valid values: {', '.join(sorted(VALID_FLAVOURS))}"
        )

    if not is_verapdf_available():
        raise VeraPDFError(
            "veraPDF is not installed or not in PATH. "
            "Installation: https://verapdf.org/ - "
            "or set the VERAPDF_BIN environment variable to the "
            "veraPDF executable."
        )

    if not path.exists():
        raise VeraPDFError(f"File not found: {path}")

    cmd = [_get_verapdf_cmd(), "--format", "xml", "--flavour", flavour, str(path)]
    logger.debug("Running veraPDF: %s", " ".join(cmd))

    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise VeraPDFError(f"veraPDF timeout after {timeout} seconds.") from e
    except (OSError, subprocess.SubprocessError) as e:
        raise VeraPDFError(f"Error running veraPDF: {e}") from e

    # Exit code 0 = compliant, 1 = non-compliant; anything else is a tool failure
    if completed.returncode not in (0, 1):
        stderr_msg = completed.stderr.strip() if completed.stderr else "unknown error"
        raise VeraPDFError(
            f"veraPDF failed with exit code {completed.returncode}: {stderr_msg}"
        )

    if not completed.stdout.strip():
        raise VeraPDFError("veraPDF returned no output")

    result = _parse_verapdf_xml(completed.stdout)
    if result.flavour is None:
        result.flavour = flavour

    logger.info(
        "veraPDF validation: %s (flavour: %s, %d/%d rules passed)",
        "compliant" if result.compliant else "non-compliant",
        result.flavour,
        result.passed_rules,
        result.passed_rules + result.failed_rules,
    )
    return result
