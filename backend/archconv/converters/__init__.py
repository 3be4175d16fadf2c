"""
Concrete converters.

Each wraps one back-end behind the Converter contract:
- PdfConverter: pypdf / img2pdf / Pillow, in-process
- GhostscriptConverter: gs
- LibreOfficeConverter: soffice
- EmailConverter: emailconverter.jar and msgconvert
"""

from .email import EmailConverter
from .formats import (
    EML_FORMATS,
    IMAGE_FORMATS,
    MSG_FORMATS,
    PDF_FORMATS,
    PDFA_FORMATS,
    basic_fallback,
    is_pdf,
    is_pdfa,
    pdf_version,
)
from .ghostscript import GhostscriptConverter
from .libreoffice import LibreOfficeConverter
from .pdf import PdfConverter

__all__ = [
    "PdfConverter",
    "GhostscriptConverter",
    "LibreOfficeConverter",
    "EmailConverter",
    "PDF_FORMATS",
    "PDFA_FORMATS",
    "IMAGE_FORMATS",
    "EML_FORMATS",
    "MSG_FORMATS",
    "is_pdf",
    "is_pdfa",
    "pdf_version",
    "basic_fallback",
]
