# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Click-based CLI for facturxattach.

This module provides the command-line interface for attaching a
Factur-X invoice XML to a PDF.
"""

# Standard Library
import logging
import sys
from pathlib import Path

# Third Party
import click
from colorama import Fore, Style, init

# Local
from . import __version__
from .attach import FACTURX_FILENAME, AttachResult, attach_facturx
from .exceptions import (
    AttachmentError,
    MetadataError,
    PDFParseError,
    UnsupportedPDFError,
    VeraPDFError,
)
from .metadata import FACTURX_LEVELS
from .utils import setup_logging

EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_FILE_NOT_FOUND = 2
EXIT_CONVERSION_FAILED = 3
EXIT_VALIDATION_FAILED = 4
EXIT_PERMISSION_ERROR = 5

logger = logging.getLogger(__name__)


def print_success(msg: str) -> None:
    """Prints a success message in green.

    Args:
        msg: The message to output.
    """
    click.echo(f"{Fore.GREEN}\u2713{Style.RESET_ALL} {msg}")


def print_error(msg: str) -> None:
    """Prints an error message in red.

    Args:
        msg: The error message to output.
    """
    click.echo(f"{Fore.RED}\u2717 Error:{Style.RESET_ALL} {msg}", err=True)


def print_warning(msg: str) -> None:
    """Prints a warning in yellow.

    Args:
        msg: The warning to output.
    """
    click.echo(f"{Fore.YELLOW}\u26a0{Style.RESET_ALL} {msg}")


def _print_result(result: AttachResult, quiet: bool) -> None:
    """Prints the attachment result in a formatted way."""
    if quiet:
        return

    print_success(
        f"Written: {result.output_path.name} "
        f"({result.attachment_name} attached, {result.processing_time:.2f}s)"
    )
    if not result.output_intent_added:
        click.echo("  Output intent already present, kept as is")
    if result.xmp_written:
        click.echo(f"  Factur-X XMP metadata: {result.facturx_level}")
    click.echo(f"  PDF SHA-256: {result.pdf_sha256}")
    click.echo(f"  XML SHA-256: {result.xml_sha256}")
    for warning in result.warnings:
        print_warning(warning)


@click.command()
@click.argument("input_pdf", required=False, type=click.Path())
@click.argument("xml_file", required=False, type=click.Path())
@click.argument("output_pdf", required=False, type=click.Path())
@click.argument("icc_profile", required=False, type=click.Path())
@click.option(
    "--name",
    "attachment_name",
    default=FACTURX_FILENAME,
    show_default=True,
    help="File name of the embedded XML",
)
@click.option(
    "--xmp/--no-xmp",
    "write_xmp",
    default=False,
    help="Write Factur-X XMP metadata (PDF/A-3B identification, fx: schema)",
)
@click.option(
    "--level",
    "facturx_level",
    type=click.Choice(list(FACTURX_LEVELS)),
    default=None,
    help="Factur-X level for the XMP metadata (default: read from the XML). "
    "Implies --xmp.",
)
@click.option(
    "-v",
    "--validate",
    "do_validate",
    is_flag=True,
    help="Validate the output as PDF/A-3B with veraPDF",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    help="Only output errors",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Detailed output",
)
@click.version_option(version=__version__)
def main(
    input_pdf: str | None,
    xml_file: str | None,
    output_pdf: str | None,
    icc_profile: str | None,
    attachment_name: str,
    write_xmp: bool,
    facturx_level: str | None,
    do_validate: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Attaches a Factur-X invoice XML to a PDF.

    INPUT_PDF is the PDF to attach to, XML_FILE the invoice XML,
    OUTPUT_PDF the path of the Factur-X PDF to write and ICC_PROFILE
    the color profile used when the PDF has no output intent.
    """
    # Initialize colorama for Windows compatibility
    init()

    ctx = click.get_current_context()
    if None in (input_pdf, xml_file, output_pdf, icc_profile):
        click.echo(ctx.get_usage(), err=True)
        click.echo(
            "Error: INPUT_PDF, XML_FILE, OUTPUT_PDF and ICC_PROFILE are required.",
            err=True,
        )
        sys.exit(EXIT_GENERAL_ERROR)

    setup_logging(verbose=verbose, quiet=quiet)

    try:
        exit_code = _attach_single_file(
            Path(input_pdf),
            Path(xml_file),
            Path(output_pdf),
            Path(icc_profile),
            attachment_name=attachment_name,
            write_xmp=write_xmp or facturx_level is not None,
            facturx_level=facturx_level,
            do_validate=do_validate,
            quiet=quiet,
        )
    except FileNotFoundError as e:
        print_error(f"File not found: {e.filename or e}")
        exit_code = EXIT_FILE_NOT_FOUND
    except PermissionError as e:
        print_error(f"Access denied: {e}")
        exit_code = EXIT_PERMISSION_ERROR
    except (
        AttachmentError,
        PDFParseError,
        UnsupportedPDFError,
        MetadataError,
        VeraPDFError,
    ) as e:
        print_error(str(e))
        exit_code = EXIT_CONVERSION_FAILED
    except Exception as e:
        logger.exception("Unexpected error")
        print_error(f"Unexpected error: {e}")
        exit_code = EXIT_GENERAL_ERROR

    sys.exit(exit_code)


def _attach_single_file(
    input_pdf: Path,
    xml_file: Path,
    output_pdf: Path,
    icc_profile: Path,
    *,
    attachment_name: str,
    write_xmp: bool,
    facturx_level: str | None,
    do_validate: bool,
    quiet: bool,
) -> int:
    """Runs the attachment and reports the outcome.

    Returns:
        Exit code.
    """
    if do_validate:
        from .verapdf import is_verapdf_available

        if not is_verapdf_available():
            print_error(
                "Validation requires veraPDF, but it is not installed.\n"
                "Please install veraPDF from https://verapdf.org/ "
                "or set VERAPDF_BIN to the veraPDF executable."
            )
            return EXIT_GENERAL_ERROR

    if not quiet:
        click.echo(f"Attaching {xml_file.name} to {input_pdf.name}...")

    result = attach_facturx(
        input_pdf,
        xml_file,
        output_pdf,
        icc_profile,
        attachment_name=attachment_name,
        write_xmp=write_xmp,
        facturx_level=facturx_level,
        validate=do_validate,
    )

    _print_result(result, quiet)

    if result.validation_failed:
        print_error(f"Validation failed for {output_pdf.name}")
        return EXIT_VALIDATION_FAILED

    return EXIT_SUCCESS


if __name__ == "__main__":
    main()
