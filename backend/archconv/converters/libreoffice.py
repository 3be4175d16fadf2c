"""
LibreOffice converter.

Office documents through `soffice --headless --convert-to EXT --outdir DIR`.

soffice writes one PDF flavour regardless of the requested PRONOM code; when
that is not the hop format and the PDF library converter is registered,
the output is rewritten by it within the same hop (PDF version, PDF/A).
Without the PDF library no PDF/A target is offered.

All LibreOffice conversions are blocking: concurrent soffice instances
share one user profile and fail.
"""

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..execution.base import Converter, HopOutput
from ..execution.errors import ConversionFailedError, ToolNotFoundError
from ..execution.tasks import ConversionTask
from .formats import (
    CSV_FORMATS,
    DOC_FORMATS,
    DOCM_FORMATS,
    DOCX_FORMATS,
    DOTX_FORMATS,
    ODP_FORMATS,
    ODS_FORMATS,
    ODT_FORMATS,
    PDF_FORMATS,
    PDFA_FORMATS,
    POTX_FORMATS,
    PPT_FORMATS,
    PPTM_FORMATS,
    PPTX_FORMATS,
    RTF_FORMATS,
    XLS_FORMATS,
    XLSM_FORMATS,
    XLSX_FORMATS,
    XLTX_FORMATS,
    build_map,
    is_pdf,
)
from .tools import find_tool, run_tool, tool_version

if TYPE_CHECKING:
    from ..execution.context import ConversionContext
    from .pdf import PdfConverter

logger = logging.getLogger(__name__)


SOFFICE_PATHS = [
    "/usr/lib/libreoffice/program/soffice",
    "/usr/local/bin/soffice",
    "/opt/libreoffice/program/soffice",
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
    "C:\\Program Files\\LibreOffice\\program\\soffice.exe",
]

# Target PRONOM -> --convert-to extension (anything else is PDF)
EXTENSIONS: Dict[str, str] = {}
for _formats, _extension in [
    (XLSX_FORMATS, "xlsx"),
    (ODS_FORMATS, "ods"),
    (ODT_FORMATS, "odt"),
    (DOCX_FORMATS, "docx"),
    (PPTX_FORMATS, "pptx"),
    (ODP_FORMATS, "odp"),
]:
    for _pronom in _formats:
        EXTENSIONS[_pronom] = _extension


def conversion_extension(target_format: str) -> str:
    return EXTENSIONS.get(target_format, "pdf")


class LibreOfficeConverter(Converter):
    """Office formats via headless soffice."""

    def __init__(self, pdf_converter: Optional["PdfConverter"] = None, soffice_path: Optional[str] = None):
        super().__init__()
        self.pdf_converter = pdf_converter
        self._soffice_path = soffice_path or find_tool("soffice", SOFFICE_PATHS) or find_tool("libreoffice")

    @property
    def name(self) -> str:
        return "LibreOffice"

    @property
    def soffice_path(self) -> str:
        if self._soffice_path is None:
            raise ToolNotFoundError(self.name, "soffice")
        return self._soffice_path

    def detect_version(self) -> str:
        if self._soffice_path is None:
            return ""
        return tool_version([self._soffice_path, "--version"], timeout=30)

    def supported_conversions(self) -> Dict[str, List[str]]:
        pdf = list(PDF_FORMATS)
        if self.pdf_converter is not None:
            pdf = PDFA_FORMATS + pdf
        return build_map(
            (XLS_FORMATS + XLSM_FORMATS + XLTX_FORMATS, [XLSX_FORMATS, ODS_FORMATS, pdf]),
            (XLSX_FORMATS, [ODS_FORMATS, pdf]),
            (DOC_FORMATS + DOCM_FORMATS + DOTX_FORMATS, [DOCX_FORMATS, ODT_FORMATS, pdf]),
            (DOCX_FORMATS, [ODT_FORMATS, pdf]),
            (PPT_FORMATS + PPTM_FORMATS + POTX_FORMATS, [pdf, ODP_FORMATS, PPTX_FORMATS]),
            (PPTX_FORMATS, [pdf, ODP_FORMATS]),
            (ODP_FORMATS, [pdf, PPTX_FORMATS]),
            (ODS_FORMATS, [pdf, XLSX_FORMATS]),
            (ODT_FORMATS, [pdf, DOCX_FORMATS]),
            (RTF_FORMATS, [pdf, DOCX_FORMATS, ODT_FORMATS]),
            (CSV_FORMATS, [pdf]),
        )

    def blocking_conversions(self) -> Dict[str, List[str]]:
        return self.supported_conversions()

    def dependencies_satisfied(self) -> bool:
        return self._soffice_path is not None

    def _convert(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        source = Path(task.path)
        extension = conversion_extension(target_format)
        output = source.with_suffix(f".{extension}")
        if output == source:
            raise ConversionFailedError(self.name, task.path, f"source already has extension .{extension}")

        run_tool(
            [
                self.soffice_path,
                "--headless",
                "--convert-to", extension,
                "--outdir", str(source.parent),
                str(source),
            ],
            converter=self.name,
            path=task.path,
            timeout=context.timeout_seconds,
            cancel=cancel,
        )
        if not output.is_file():
            raise ConversionFailedError(self.name, task.path, f"soffice produced no {output.name}")

        tools = [self.name_and_version]
        produced = target_format
        if is_pdf(target_format) and self.pdf_converter is not None:
            actual = context.identifier.identify_format(str(output))
            if actual != target_format:
                logger.debug(f"[{self.name}] soffice wrote {actual}, rewriting as {target_format}")
                staged = output.with_name(f"{output.stem}_LO.pdf")
                output.replace(staged)
                try:
                    produced = self.pdf_converter.write_pdf(str(staged), str(output), target_format, attempt)
                finally:
                    staged.unlink(missing_ok=True)
                tools.append(self.pdf_converter.name_and_version)

        return HopOutput(paths=[str(output)], format=produced, tools=tools)
