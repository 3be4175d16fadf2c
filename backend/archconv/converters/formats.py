"""
PRONOM format groups shared by the converters.
"""

from typing import Dict, List, Optional, Tuple

# PDF
PDF_FORMATS = [
    "fmt/14",    # PDF 1.0
    "fmt/15",    # PDF 1.1
    "fmt/16",    # PDF 1.2
    "fmt/17",    # PDF 1.3
    "fmt/18",    # PDF 1.4
    "fmt/19",    # PDF 1.5
    "fmt/20",    # PDF 1.6
    "fmt/276",   # PDF 1.7
    "fmt/1129",  # PDF 2.0
]

PDFA_FORMATS = [
    "fmt/95",    # PDF/A-1a
    "fmt/354",   # PDF/A-1b
    "fmt/476",   # PDF/A-2a
    "fmt/477",   # PDF/A-2b
    "fmt/478",   # PDF/A-2u
    "fmt/479",   # PDF/A-3a
    "fmt/480",   # PDF/A-3b
    "fmt/481",   # PDF/A-3u
]

# Accessible ("A") conformance levels and their basic ("B") fallback
PDFA_BASIC_FALLBACK: Dict[str, str] = {
    "fmt/95": "fmt/354",
    "fmt/476": "fmt/477",
    "fmt/479": "fmt/480",
}

# PRONOM -> (PDF/A part, conformance)
PDFA_LEVELS: Dict[str, Tuple[int, str]] = {
    "fmt/95": (1, "A"),
    "fmt/354": (1, "B"),
    "fmt/476": (2, "A"),
    "fmt/477": (2, "B"),
    "fmt/478": (2, "U"),
    "fmt/479": (3, "A"),
    "fmt/480": (3, "B"),
    "fmt/481": (3, "U"),
}

# PRONOM -> PDF header version
PDF_VERSIONS: Dict[str, str] = {
    "fmt/14": "1.0",
    "fmt/15": "1.1",
    "fmt/16": "1.2",
    "fmt/17": "1.3",
    "fmt/18": "1.4",
    "fmt/19": "1.5",
    "fmt/20": "1.6",
    "fmt/276": "1.7",
    "fmt/1129": "2.0",
    "fmt/95": "1.4",
    "fmt/354": "1.4",
    "fmt/476": "1.7",
    "fmt/477": "1.7",
    "fmt/478": "1.7",
    "fmt/479": "1.7",
    "fmt/480": "1.7",
    "fmt/481": "1.7",
}
DEFAULT_PDF_VERSION = "1.7"

# Raster images (JPEG, PNG, GIF, TIFF, BMP families)
IMAGE_FORMATS = [
    "fmt/3", "fmt/4",
    "fmt/11", "fmt/12", "fmt/13", "fmt/935",
    "fmt/41", "fmt/42", "fmt/43", "fmt/44",
    "x-fmt/398", "x-fmt/390", "x-fmt/391",
    "fmt/645", "fmt/1507", "fmt/112", "fmt/367", "fmt/1917",
    "x-fmt/399", "x-fmt/388", "x-fmt/387",
    "fmt/155", "fmt/353", "fmt/154", "fmt/153", "fmt/156",
    "x-fmt/270",
    "fmt/115", "fmt/118", "fmt/119", "fmt/114", "fmt/116", "fmt/117",
]

# Page image targets for PDF rasterization
PNG_FORMAT = "fmt/12"
JPEG_FORMAT = "fmt/43"
BMP_FORMAT = "fmt/116"
TIFF_FORMAT = "fmt/353"

POSTSCRIPT_FORMATS = ["fmt/124", "x-fmt/91", "x-fmt/406", "x-fmt/407", "x-fmt/408", "fmt/501"]

# Office documents
DOC_FORMATS = [
    "x-fmt/329", "fmt/609", "fmt/39", "x-fmt/274", "x-fmt/275", "x-fmt/276",
    "fmt/1688", "fmt/37", "fmt/38", "fmt/1282", "fmt/1283", "x-fmt/131",
    "x-fmt/42", "x-fmt/43", "fmt/40", "x-fmt/44", "x-fmt/393", "x-fmt/394",
    "fmt/892",
]
DOCX_FORMATS = ["fmt/1827", "fmt/412"]
DOCM_FORMATS = ["fmt/523"]
DOTX_FORMATS = ["fmt/597"]

XLS_FORMATS = ["fmt/55", "fmt/56", "fmt/57", "fmt/61", "fmt/62", "fmt/59"]
XLSX_FORMATS = ["fmt/214", "fmt/1828"]
XLSM_FORMATS = ["fmt/445"]
XLTX_FORMATS = ["fmt/598"]
CSV_FORMATS = ["x-fmt/18", "fmt/800"]

PPT_FORMATS = [
    "fmt/1537", "fmt/1866", "fmt/181", "fmt/1867", "fmt/179",
    "fmt/1747", "fmt/1748", "x-fmt/88", "fmt/125", "fmt/126",
]
PPTX_FORMATS = ["fmt/215", "fmt/1829", "fmt/494"]
PPTM_FORMATS = ["fmt/487"]
POTX_FORMATS = ["fmt/631"]

ODT_FORMATS = ["x-fmt/3", "fmt/1756", "fmt/136", "fmt/290", "fmt/291"]
ODS_FORMATS = ["fmt/1755", "fmt/137", "fmt/294", "fmt/295"]
ODP_FORMATS = ["fmt/293", "fmt/292", "fmt/138", "fmt/1754"]

RTF_FORMATS = ["fmt/969", "fmt/45", "fmt/50", "fmt/52", "fmt/53", "fmt/355"]

# E-mail
EML_FORMATS = ["fmt/278", "fmt/950"]
MSG_FORMATS = ["x-fmt/430", "fmt/1144"]


def is_pdf(pronom: str) -> bool:
    return pronom in PDF_FORMATS or pronom in PDFA_FORMATS


def is_pdfa(pronom: str) -> bool:
    return pronom in PDFA_LEVELS


def pdf_version(pronom: str) -> str:
    return PDF_VERSIONS.get(pronom, DEFAULT_PDF_VERSION)


def basic_fallback(pronom: str) -> Optional[str]:
    """Basic conformance counterpart of an accessible PDF/A code, else None."""
    return PDFA_BASIC_FALLBACK.get(pronom)


def build_map(*entries: Tuple[List[str], List[List[str]]]) -> Dict[str, List[str]]:
    """Merge (sources, [target groups]) pairs into one source -> targets map."""
    result: Dict[str, List[str]] = {}
    for sources, target_groups in entries:
        for source in sources:
            targets = result.setdefault(source, [])
            for group in target_groups:
                for target in group:
                    if target not in targets:
                        targets.append(target)
    return result
