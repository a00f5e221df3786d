"""Lightweight PDF/A identification check.

A file passes when it starts with the PDF signature and its XMP metadata
declares a PDF/A part (``pdfaid:part``), either as an attribute or as an
element. Full conformance validation is not attempted.
"""

import re

from thesisflow.errors import InvalidFileFormatError

PDF_SIGNATURE = b"%PDF-"

_PDFAID_ATTRIBUTE = re.compile(rb"pdfaid:part\s*=\s*[\"']\s*[1-4]\s*[\"']")
_PDFAID_ELEMENT = re.compile(rb"<pdfaid:part>\s*[1-4]\s*</pdfaid:part>")


def is_pdf(path: str) -> bool:
    with open(path, "rb") as fh:
        return fh.read(len(PDF_SIGNATURE)) == PDF_SIGNATURE


def has_pdfa_identification(data: bytes) -> bool:
    return bool(_PDFAID_ATTRIBUTE.search(data) or _PDFAID_ELEMENT.search(data))


def validate_pdfa(path: str, label: str = "Thesis file") -> None:
    """Raise InvalidFileFormatError unless ``path`` looks like a PDF/A document.

    Args:
        path: File on disk to inspect
        label: Subject used in error messages (e.g. "Thesis resume")
    """
    with open(path, "rb") as fh:
        data = fh.read()
    if not data.startswith(PDF_SIGNATURE):
        raise InvalidFileFormatError(f"{label} must be a PDF file")
    if not has_pdfa_identification(data):
        raise InvalidFileFormatError(f"{label} must include PDF/A identification metadata")


__all__ = [
    "PDF_SIGNATURE",
    "is_pdf",
    "has_pdfa_identification",
    "validate_pdfa",
]
