"""
PDF library converter.

In-process conversions with pypdf, img2pdf and Pillow:
- raster images -> PDF or PDF/A
- PDF -> PDF of another version
- PDF -> PDF/A (XMP pdfaid identification + sRGB output intent)
- combining images/PDFs into one document for the merge pipeline

PDF/A output embeds an ICC profile checked out from the shared pool.
A failed accessible ("A") PDF/A attempt is retried as basic ("B").
"""

import io
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

import img2pdf
import pypdf
from PIL import Image
from pypdf import PdfReader, PdfWriter
from pypdf.generic import (
    ArrayObject,
    BooleanObject,
    DecodedStreamObject,
    DictionaryObject,
    NameObject,
    NumberObject,
    TextStringObject,
)

from ..execution.base import Converter, HopOutput
from ..execution.errors import ConversionFailedError
from ..execution.resources import IccProfile, IccProfilePool
from ..execution.tasks import ConversionTask
from .formats import (
    IMAGE_FORMATS,
    PDF_FORMATS,
    PDFA_FORMATS,
    PDFA_LEVELS,
    basic_fallback,
    build_map,
    is_pdf,
    is_pdfa,
    pdf_version,
)

if TYPE_CHECKING:
    from ..execution.context import ConversionContext

logger = logging.getLogger(__name__)


XMP_TEMPLATE = """<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/"
    xmlns:pdf="http://ns.adobe.com/pdf/1.3/"
    xmlns:xmp="http://ns.adobe.com/xap/1.0/"
    xmlns:dc="http://purl.org/dc/elements/1.1/">
   <pdfaid:part>{part}</pdfaid:part>
   <pdfaid:conformance>{conformance}</pdfaid:conformance>
   <pdf:Producer>{producer}</pdf:Producer>
   <xmp:ModifyDate>{modified}</xmp:ModifyDate>
   <dc:format>application/pdf</dc:format>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""

# Seconds to wait for a pooled ICC profile
ICC_CHECKOUT_TIMEOUT = 60


class PdfConverter(Converter):
    """Image and PDF conversions done in-process."""

    def __init__(self, icc_pool: Optional[IccProfilePool] = None):
        super().__init__()
        self.icc_pool = icc_pool or IccProfilePool(size=1)

    @property
    def name(self) -> str:
        return "pypdf"

    def detect_version(self) -> str:
        return pypdf.__version__

    def supported_conversions(self) -> Dict[str, List[str]]:
        pdf_targets = PDF_FORMATS + PDFA_FORMATS
        return build_map(
            (IMAGE_FORMATS, [pdf_targets]),
            (pdf_targets, [pdf_targets]),
        )

    def blocking_conversions(self) -> Dict[str, List[str]]:
        """Anything producing PDF/A."""
        return build_map((IMAGE_FORMATS + PDF_FORMATS + PDFA_FORMATS, [PDFA_FORMATS]))

    def dependencies_satisfied(self) -> bool:
        return True

    # -------------------------------------------------------------------------
    # Hop
    # -------------------------------------------------------------------------

    def _convert(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        source = Path(task.path)
        tools = [self.name_and_version]

        if task.current_format in IMAGE_FORMATS:
            output = source.with_suffix(".pdf")
            reader = PdfReader(io.BytesIO(self.image_to_pdf(str(source))))
            produced = self._write(reader, str(output), target_format, attempt)
            tools.insert(0, f"img2pdf {img2pdf.__version__}")
            return HopOutput(paths=[str(output)], format=produced, tools=tools)

        if is_pdf(task.current_format):
            output = source.with_name(f"{source.stem}_TEMP.pdf")
            produced = self.write_pdf(str(source), str(output), target_format, attempt)
            return HopOutput(paths=[str(output)], format=produced, tools=tools, final_path=str(source))

        raise ConversionFailedError(self.name, task.path, f"unsupported source format {task.current_format}")

    # -------------------------------------------------------------------------
    # Building blocks (also used by Ghostscript, LibreOffice and merging)
    # -------------------------------------------------------------------------

    def image_to_pdf(self, path: str) -> bytes:
        """
        Wrap an image in a one-page PDF.

        img2pdf embeds JPEG/PNG losslessly; anything it rejects (alpha
        channels, palette BMPs, ...) is re-encoded as RGB PNG with Pillow.
        """
        try:
            return img2pdf.convert(path)
        except Exception as e:
            logger.debug(f"[{self.name}] img2pdf rejected {path} ({e}), re-encoding with Pillow")

        buffer = io.BytesIO()
        with Image.open(path) as image:
            image.convert("RGB").save(buffer, format="PNG")
        return img2pdf.convert(buffer.getvalue())

    def write_pdf(self, source: str, output: str, target_format: str, attempt: int = 0) -> str:
        """
        Rewrite the PDF at source as target_format at output.

        Returns the format actually written (the basic PDF/A level when an
        accessible level is retried).
        """
        return self._write(PdfReader(source), output, target_format, attempt)

    def combine_files(self, paths: List[str], target_format: str, output_path: str) -> None:
        """Combine images and PDFs, in order, into one document."""
        writer = PdfWriter()
        for path in paths:
            if Path(path).suffix.lower() == ".pdf":
                writer.append(path)
            else:
                writer.append(PdfReader(io.BytesIO(self.image_to_pdf(path))))
        self._finish(writer, output_path, target_format)

    def _write(self, reader: PdfReader, output: str, target_format: str, attempt: int) -> str:
        produced = target_format
        fallback = basic_fallback(target_format)
        if attempt > 0 and fallback is not None:
            logger.info(f"[{self.name}] PDF/A accessible attempt failed, trying {fallback} instead of {target_format}")
            produced = fallback

        writer = PdfWriter(clone_from=reader)
        self._finish(writer, output, produced)
        return produced

    def _finish(self, writer: PdfWriter, output: str, target_format: str) -> None:
        writer.pdf_header = f"%PDF-{pdf_version(target_format)}"
        if is_pdfa(target_format):
            with self.icc_pool.checkout(timeout=ICC_CHECKOUT_TIMEOUT) as profile:
                self._make_pdfa(writer, target_format, profile)
        try:
            with open(output, "wb") as f:
                writer.write(f)
        except OSError as e:
            raise ConversionFailedError(self.name, output, f"could not write PDF: {e}")

    def _make_pdfa(self, writer: PdfWriter, target_format: str, profile: IccProfile) -> None:
        """Add PDF/A identification metadata and an sRGB output intent."""
        part, conformance = PDFA_LEVELS[target_format]
        root = writer.root_object

        removed = remove_interpolation(writer)
        if removed:
            logger.debug(f"[{self.name}] Removed image interpolation on {removed} image(s)")

        xmp = XMP_TEMPLATE.format(
            part=part,
            conformance=conformance,
            producer=self.name_and_version,
            modified=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )
        metadata = DecodedStreamObject()
        metadata.set_data(xmp.encode("utf-8"))
        metadata[NameObject("/Type")] = NameObject("/Metadata")
        metadata[NameObject("/Subtype")] = NameObject("/XML")
        root[NameObject("/Metadata")] = writer._add_object(metadata)

        icc = DecodedStreamObject()
        icc.set_data(profile.data)
        icc[NameObject("/N")] = NumberObject(profile.components)

        intent = DictionaryObject({
            NameObject("/Type"): NameObject("/OutputIntent"),
            NameObject("/S"): NameObject("/GTS_PDFA1"),
            NameObject("/OutputConditionIdentifier"): TextStringObject("Custom"),
            NameObject("/RegistryName"): TextStringObject("https://www.color.org"),
            NameObject("/Info"): TextStringObject(profile.description),
            NameObject("/DestOutputProfile"): writer._add_object(icc),
        })
        root[NameObject("/OutputIntents")] = ArrayObject([writer._add_object(intent)])

        if conformance == "A":
            root[NameObject("/MarkInfo")] = DictionaryObject({
                NameObject("/Marked"): BooleanObject(True),
            })


def remove_interpolation(writer: PdfWriter) -> int:
    """Drop /Interpolate from image XObjects (forbidden in PDF/A). Returns the count."""
    removed = 0
    for page in writer.pages:
        resources = page.get("/Resources")
        if resources is None:
            continue
        xobjects = resources.get_object().get("/XObject")
        if xobjects is None:
            continue
        for ref in xobjects.get_object().values():
            xobject = ref.get_object()
            if "/Interpolate" in xobject:
                del xobject["/Interpolate"]
                removed += 1
    return removed
