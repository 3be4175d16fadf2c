"""
Converter registry.

Central, ordered list of the converters usable on this host.

Design rules:
- Registration order is fixed and is the dispatch tie-break:
  the first converter supporting a hop gets it
- Converters failing the platform or dependency check are left out
- No singletons: one registry per run, passed explicitly
"""

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional

from .base import Converter, current_platform

if TYPE_CHECKING:
    from .resources import IccProfilePool

logger = logging.getLogger(__name__)


class ConverterRegistry:
    """
    Ordered registry of available converters.

    Provides:
    - First-match lookup for a (source, target) hop
    - Listing for the CLI and monitoring API
    """

    def __init__(self, converters: Iterable[Converter], system: Optional[str] = None):
        self.system = system or current_platform()
        self._converters: List[Converter] = []
        self._skipped: List[Converter] = []

        for converter in converters:
            self.register(converter)

    def register(self, converter: Converter) -> bool:
        """Add a converter if it can run here. Returns whether it was added."""
        if not converter.supports_platform(self.system):
            logger.info(f"[Converters] '{converter.name}': not supported on {self.system}")
            self._skipped.append(converter)
            return False
        if not converter.capability.dependencies_satisfied:
            logger.info(f"[Converters] '{converter.name}': dependencies missing")
            self._skipped.append(converter)
            return False

        self._converters.append(converter)
        logger.info(
            f"[Converters] #{len(self._converters)} '{converter.name_and_version}': available"
        )
        return True

    @property
    def converters(self) -> List[Converter]:
        return list(self._converters)

    @property
    def skipped(self) -> List[Converter]:
        return list(self._skipped)

    def first_supporting(self, source: str, target: str) -> Optional[Converter]:
        """First registered converter able to convert source -> target, or None."""
        for converter in self._converters:
            if converter.supports_conversion(source, target):
                return converter
        return None

    def get(self, name: str) -> Optional[Converter]:
        for converter in self._converters:
            if converter.name == name:
                return converter
        return None

    def list_converters(self) -> List[dict]:
        """Converter info for display, available converters first."""
        result = []
        for converter in self._converters + self._skipped:
            capability = converter.capability
            result.append({
                "name": capability.name,
                "version": capability.version,
                "available": converter in self._converters,
                "supported_os": capability.supported_os,
                "source_formats": len(capability.supported),
                "blocking_formats": len(capability.blocking),
            })
        return result

    def __iter__(self) -> Iterator[Converter]:
        return iter(list(self._converters))

    def __len__(self) -> int:
        return len(self._converters)

    def __bool__(self) -> bool:
        return bool(self._converters)


def build_default_registry(icc_pool: "IccProfilePool") -> ConverterRegistry:
    """
    Registry with the standard converters in dispatch order:
    PDF library, Ghostscript, LibreOffice, e-mail.
    """
    from ..converters import (
        EmailConverter,
        GhostscriptConverter,
        LibreOfficeConverter,
        PdfConverter,
    )

    pdf = PdfConverter(icc_pool=icc_pool)
    pdf_helper = pdf if pdf.capability.dependencies_satisfied else None

    return ConverterRegistry([
        pdf,
        GhostscriptConverter(pdf_converter=pdf_helper),
        LibreOfficeConverter(pdf_converter=pdf_helper),
        EmailConverter(),
    ])
