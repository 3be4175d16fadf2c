"""
Ghostscript converter.

- PDF / PDF-A -> page images (png, jpg, bmp, tiff), one file per page.
  The PDF is split: every page becomes a derived record and the source
  record is retired.
- PostScript -> PDF via pdfwrite with -dCompatibilityLevel; PDF/A targets
  are finished by the PDF library converter in the same hop.

Every Ghostscript conversion is blocking.
"""

import logging
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..execution.base import Converter, HopOutput
from ..execution.errors import ConversionFailedError, ToolNotFoundError
from ..execution.tasks import ConversionTask
from .formats import (
    BMP_FORMAT,
    JPEG_FORMAT,
    PDF_FORMATS,
    PDFA_FORMATS,
    PNG_FORMAT,
    POSTSCRIPT_FORMATS,
    TIFF_FORMAT,
    build_map,
    is_pdf,
    is_pdfa,
    pdf_version,
)
from .tools import find_tool, run_tool, tool_version

if TYPE_CHECKING:
    from ..execution.context import ConversionContext
    from .pdf import PdfConverter

logger = logging.getLogger(__name__)


# Page image format -> (gs device, file extension)
IMAGE_DEVICES: Dict[str, tuple] = {
    PNG_FORMAT: ("png16m", ".png"),
    JPEG_FORMAT: ("jpeg", ".jpg"),
    BMP_FORMAT: ("bmp16m", ".bmp"),
    TIFF_FORMAT: ("tiff24nc", ".tiff"),
}

# Rasterization resolution (dpi)
RESOLUTION = 300


class GhostscriptConverter(Converter):
    """Rasterizes PDFs and distills PostScript with gs."""

    def __init__(self, pdf_converter: Optional["PdfConverter"] = None, gs_path: Optional[str] = None):
        super().__init__()
        self.pdf_converter = pdf_converter
        self._gs_path = gs_path or find_tool("gs", ["/usr/local/bin/gs", "/usr/bin/gs", "/opt/homebrew/bin/gs"])

    @property
    def name(self) -> str:
        return "Ghostscript"

    @property
    def gs_path(self) -> str:
        if self._gs_path is None:
            raise ToolNotFoundError(self.name, "gs")
        return self._gs_path

    def detect_version(self) -> str:
        if self._gs_path is None:
            return ""
        return tool_version([self._gs_path, "--version"])

    def supported_conversions(self) -> Dict[str, List[str]]:
        pdf_targets = list(PDF_FORMATS)
        if self.pdf_converter is not None:
            pdf_targets += PDFA_FORMATS
        return build_map(
            (PDF_FORMATS + PDFA_FORMATS, [list(IMAGE_DEVICES)]),
            (POSTSCRIPT_FORMATS, [pdf_targets]),
        )

    def blocking_conversions(self) -> Dict[str, List[str]]:
        return self.supported_conversions()

    def dependencies_satisfied(self) -> bool:
        return self._gs_path is not None

    def _convert(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        if target_format in IMAGE_DEVICES:
            return self._rasterize(task, target_format, context, cancel)
        if is_pdf(target_format):
            return self._distill(task, target_format, context, attempt, cancel)
        raise ConversionFailedError(self.name, task.path, f"{target_format} is not supported by Ghostscript")

    def _rasterize(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        cancel: threading.Event,
    ) -> HopOutput:
        """One image per page in <stem>-pages/, named <stem>_<page>.<ext>."""
        device, extension = IMAGE_DEVICES[target_format]
        source = Path(task.path)
        folder = source.parent / f"{source.stem}-pages"
        if folder.exists():
            shutil.rmtree(folder)
        folder.mkdir(parents=True)

        pattern = folder / f"{source.stem}_%d{extension}"
        run_tool(
            [
                self.gs_path,
                "-dNOPAUSE", "-dBATCH", "-dSAFER", "-q",
                f"-sDEVICE={device}",
                f"-r{RESOLUTION}",
                "-o", str(pattern),
                str(source),
            ],
            converter=self.name,
            path=task.path,
            timeout=context.timeout_seconds,
            cancel=cancel,
        )

        pages = sorted(folder.glob(f"*{extension}"), key=_page_number)
        if not pages:
            raise ConversionFailedError(self.name, task.path, "no pages were rendered")
        return HopOutput(paths=[str(p) for p in pages], format=target_format, split=True)

    def _distill(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        source = Path(task.path)
        output = source.with_suffix(".pdf")
        run_tool(
            [
                self.gs_path,
                "-dNOPAUSE", "-dBATCH", "-dSAFER", "-q",
                f"-dCompatibilityLevel={pdf_version(target_format)}",
                "-sDEVICE=pdfwrite",
                "-o", str(output),
                str(source),
            ],
            converter=self.name,
            path=task.path,
            timeout=context.timeout_seconds,
            cancel=cancel,
        )

        tools = [self.name_and_version]
        produced = target_format
        if is_pdfa(target_format):
            if self.pdf_converter is None:
                raise ConversionFailedError(self.name, task.path, "PDF/A needs the PDF library converter")
            staged = output.with_name(f"{output.stem}_GS.pdf")
            output.replace(staged)
            try:
                produced = self.pdf_converter.write_pdf(str(staged), str(output), target_format, attempt)
            finally:
                staged.unlink(missing_ok=True)
            tools.append(self.pdf_converter.name_and_version)

        return HopOutput(paths=[str(output)], format=produced, tools=tools)


def _page_number(path: Path) -> int:
    suffix = path.stem.rsplit("_", 1)[-1]
    return int(suffix) if suffix.isdigit() else 0
