"""
E-mail converter.

- EML -> PDF 1.4 with emailconverter (java -jar emailconverter.jar FILE -a),
  which renders through wkhtmltopdf and extracts attachments into
  <stem>-attachments/ beside the message
- MSG -> EML with msgconvert

Extracted attachments become derived records with their own targets and
routes. No e-mail conversion is blocking.
"""

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..execution.base import Converter, HopOutput
from ..execution.errors import ConversionFailedError, ToolNotFoundError
from ..execution.tasks import ConversionTask
from .formats import EML_FORMATS, MSG_FORMATS, build_map
from .tools import find_tool, run_tool

if TYPE_CHECKING:
    from ..execution.context import ConversionContext

logger = logging.getLogger(__name__)


ENV_JAR_PATH = "ARCHCONV_EMAILCONVERTER_JAR"
JAR_NAME = "emailconverter.jar"
JAR_PATHS = [
    "/usr/local/share/emailconverter/emailconverter.jar",
    "/usr/share/java/emailconverter.jar",
    "/opt/emailconverter/emailconverter.jar",
]

EML_PDF_FORMAT = "fmt/18"
EML_VERSION = "2.6.0"


def find_jar() -> Optional[str]:
    """Locate emailconverter.jar from the environment or common locations."""
    configured = os.environ.get(ENV_JAR_PATH)
    if configured:
        return configured if Path(configured).is_file() else None
    for path in JAR_PATHS + [str(Path.cwd() / JAR_NAME)]:
        if Path(path).is_file():
            return path
    return None


def attachments_folder(message_path: str) -> Path:
    path = Path(message_path)
    return path.parent / f"{path.stem}-attachments"


class EmailConverter(Converter):
    """EML and MSG messages."""

    def __init__(
        self,
        jar_path: Optional[str] = None,
        java_path: Optional[str] = None,
        wkhtmltopdf_path: Optional[str] = None,
        msgconvert_path: Optional[str] = None,
    ):
        super().__init__()
        self.jar_path = jar_path or find_jar()
        self.java_path = java_path or find_tool("java")
        self.wkhtmltopdf_path = wkhtmltopdf_path or find_tool("wkhtmltopdf")
        self.msgconvert_path = msgconvert_path or find_tool("msgconvert")

    @property
    def name(self) -> str:
        return "EmailConverter"

    def detect_version(self) -> str:
        return EML_VERSION if self.can_convert_eml else ""

    @property
    def can_convert_eml(self) -> bool:
        return bool(self.jar_path and self.java_path and self.wkhtmltopdf_path)

    @property
    def can_convert_msg(self) -> bool:
        return self.msgconvert_path is not None

    def supported_conversions(self) -> Dict[str, List[str]]:
        entries = []
        if self.can_convert_eml:
            entries.append((EML_FORMATS, [[EML_PDF_FORMAT]]))
        if self.can_convert_msg:
            entries.append((MSG_FORMATS, [EML_FORMATS]))
        return build_map(*entries)

    def supported_os(self) -> List[str]:
        return ["linux", "darwin"]

    def dependencies_satisfied(self) -> bool:
        return self.can_convert_eml or self.can_convert_msg

    def _convert(
        self,
        task: ConversionTask,
        target_format: str,
        context: "ConversionContext",
        attempt: int,
        cancel: threading.Event,
    ) -> HopOutput:
        source = Path(task.path)

        if task.current_format in EML_FORMATS:
            if not self.can_convert_eml:
                raise ToolNotFoundError(self.name, "java/wkhtmltopdf/emailconverter.jar")
            output = source.with_suffix(".pdf")
            args = [self.java_path, "-jar", self.jar_path, str(source), "-a"]
        elif task.current_format in MSG_FORMATS:
            if not self.can_convert_msg:
                raise ToolNotFoundError(self.name, "msgconvert")
            output = source.with_suffix(".eml")
            args = [self.msgconvert_path, "--outfile", str(output), str(source)]
        else:
            raise ConversionFailedError(self.name, task.path, f"unsupported source format {task.current_format}")

        run_tool(
            args,
            converter=self.name,
            path=task.path,
            timeout=context.timeout_seconds,
            cancel=cancel,
            cwd=str(source.parent),
        )
        return HopOutput(paths=[str(output)], format=target_format)

    def _accept_output(self, task, target_format, produced, context) -> None:
        """Commit the message, then queue whatever attachments were extracted."""
        message_path = task.path
        super()._accept_output(task, target_format, produced, context)

        folder = attachments_folder(message_path)
        if not folder.is_dir():
            return
        attachments = sorted(p for p in folder.rglob("*") if p.is_file())
        for attachment in attachments:
            context.add_derived_task(
                str(attachment),
                parent_id=task.file_id,
                tools=[self.name_and_version],
            )
        if attachments:
            context.run_log.info(
                f"Added {len(attachments)} attachment(s) to the run",
                filename=message_path,
            )
