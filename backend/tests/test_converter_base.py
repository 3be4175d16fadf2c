"""
Tests for the Converter contract.

convert_file wraps every back-end with retries, a timeout guard and output
verification; these tests drive it through small Converter subclasses.
"""

import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from archconv.execution.base import Converter, ConverterCapability, HopOutput
from archconv.execution.results import HopStatus
from archconv.execution.tasks import ConversionTask, TaskState
from archconv.files.models import FileRecord

from conftest import FakeConverter, make_settings, write_file


def register(context, path, pronom, target):
    record = FileRecord(path=str(path), original_path=str(path), original_format=pronom,
                        current_format=pronom, target_format=target, route=[target])
    context.registry.add(record)
    task = ConversionTask(file_id=record.id, path=str(path), current_format=pronom,
                          target_format=target, route=[target])
    return record, task


class InPlaceConverter(Converter):
    """Rewrites a file through a temporary sibling committed over the source."""

    def __init__(self, produce="fmt/276"):
        super().__init__()
        self.produce = produce

    @property
    def name(self):
        return "InPlace"

    def supported_conversions(self):
        return {"fmt/18": ["fmt/276", "fmt/479"]}

    def dependencies_satisfied(self):
        return True

    def _convert(self, task, target_format, context, attempt, cancel):
        source = Path(task.path)
        temp = source.with_name(f"{source.stem}_TEMP{source.suffix}")
        write_file(temp, self.produce, body="rewritten")
        return HopOutput(paths=[str(temp)], format=self.produce, tools=["helper 2.0"], final_path=str(source))


# =============================================================================
# Capabilities
# =============================================================================

class TestCapability:

    def test_capability_snapshot(self):
        converter = FakeConverter("Office", {"fmt/40": ["fmt/276"]}, blocking={"fmt/40": ["fmt/276"]}, version="7.6")
        capability = converter.capability

        assert isinstance(capability, ConverterCapability)
        assert capability.name_and_version == "Office 7.6"
        assert capability.supports("fmt/40", "fmt/276")
        assert not capability.supports("fmt/276", "fmt/40")
        assert converter.is_blocking("fmt/40", "fmt/276")
        assert converter.capability is capability

    def test_version_failure_is_empty(self):
        class Broken(FakeConverter):
            def detect_version(self):
                raise OSError("no binary")

        converter = Broken("Broken")
        assert converter.version == ""
        assert converter.name_and_version == "Broken"

    def test_platform_check(self):
        converter = FakeConverter(platforms=["linux", "darwin"])
        assert converter.supports_platform("linux")
        assert not converter.supports_platform("windows")


# =============================================================================
# convert_file
# =============================================================================

class TestConvertFile:

    def test_success_replaces_input(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        record, task = register(context, source, "fmt/40", "fmt/276")

        outcome = FakeConverter("Word", {"fmt/40": ["fmt/276"]}).convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.SUCCESS
        assert outcome.attempts == 1
        assert task.state == TaskState.COMPLETED_HOP
        assert not source.exists()
        assert Path(task.path).is_file()
        assert record.path == task.path
        assert outcome.output_paths == [task.path]

    def test_failed_attempts_are_logged_and_input_kept(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        record, task = register(context, source, "fmt/40", "fmt/276")

        outcome = FakeConverter("Word", {"fmt/40": ["fmt/276"]}, fail_times=5).convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.FAILED
        assert outcome.attempts == 3
        assert task.failed is True
        assert task.state == TaskState.FAILED_HOP
        assert source.is_file()
        errors = context.run_log.recent(errors_only=True)
        assert len(errors) == 3
        assert errors[0].message.startswith("Word: attempt 1/3 failed")
        assert errors[0].pronom == "fmt/40"

    def test_in_place_rewrite_commits_over_source(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "mail.pdf", "fmt/18")
        record, task = register(context, source, "fmt/18", "fmt/276")

        outcome = InPlaceConverter().convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.SUCCESS
        assert task.path == str(source)
        assert source.read_text(encoding="utf-8").startswith("FORMAT:fmt/276")
        assert not (tmp_path / "output" / "mail_TEMP.pdf").exists()
        assert record.conversion_tools == ["helper 2.0"]

    def test_lowered_format_updates_route_and_target(self, tmp_path, make_context):
        """A fallback level replaces the requested format everywhere."""
        context = make_context([])
        source = write_file(tmp_path / "output" / "mail.pdf", "fmt/18")
        record, task = register(context, source, "fmt/18", "fmt/479")

        outcome = InPlaceConverter(produce="fmt/276").convert_file(task, "fmt/479", context)

        assert outcome.status == HopStatus.SUCCESS
        assert outcome.output_format == "fmt/276"
        assert task.route == ["fmt/276"]
        assert task.target_format == "fmt/276"
        assert record.target_format == "fmt/276"

    def test_rejected_in_place_output_is_removed(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "mail.pdf", "fmt/18")
        _, task = register(context, source, "fmt/18", "fmt/276")

        class Liar(InPlaceConverter):
            def _convert(self, task, target_format, context, attempt, cancel):
                produced = super()._convert(task, target_format, context, attempt, cancel)
                write_file(Path(produced.path), "fmt/14")
                return produced

        outcome = Liar().convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.FAILED
        assert source.read_text(encoding="utf-8").startswith("FORMAT:fmt/18")
        assert not (tmp_path / "output" / "mail_TEMP.pdf").exists()

    def test_output_is_removed_when_commit_fails(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        record, task = register(context, source, "fmt/40", "fmt/276")
        converter = FakeConverter("Word", {"fmt/40": ["fmt/276"]})

        with patch.object(FakeConverter, "_accept_output", side_effect=PermissionError("locked")):
            with pytest.raises(PermissionError):
                converter.convert_file(task, "fmt/276", context)

        assert source.is_file()
        assert not (tmp_path / "output" / "a.fmt-276").exists()
        assert record.path == str(source)

    def test_abandoned_hop_is_not_committed(self, tmp_path, make_context):
        context = make_context([])
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        record, task = register(context, source, "fmt/40", "fmt/276")
        abandoned = threading.Event()
        abandoned.set()

        outcome = FakeConverter("Word", {"fmt/40": ["fmt/276"]}).convert_file(
            task, "fmt/276", context, abandoned=abandoned,
        )

        assert outcome.status == HopStatus.ABANDONED
        assert source.is_file()
        assert not (tmp_path / "output" / "a.fmt-276").exists()
        assert task.path == str(source)
        assert record.path == str(source)


# =============================================================================
# Timed-out attempts
# =============================================================================

class TestTimedOutAttempts:
    """A helper thread that outlives its attempt is waited for or cleaned up."""

    @pytest.fixture
    def context(self, tmp_path, make_context):
        settings = make_settings(
            str(tmp_path / "input"), str(tmp_path / "output"), {"fmt/40": "fmt/276"},
            timeout_minutes=0.005,
        )
        return make_context([], settings=settings)

    def test_blocking_retry_waits_for_timed_out_attempt(self, tmp_path, context, monkeypatch):
        monkeypatch.setattr("archconv.execution.base.SETTLE_SECONDS", 0.05)
        pairs = {"fmt/40": ["fmt/276"]}
        converter = FakeConverter("Office", pairs, blocking=pairs, first_attempt_delay=1.0)
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        record, task = register(context, source, "fmt/40", "fmt/276")

        outcome = converter.convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.SUCCESS
        assert outcome.attempts == 2
        assert converter.max_active == 1
        assert converter.active == 0
        assert record.path == str(tmp_path / "output" / "a.fmt-276")
        assert sorted(p.name for p in (tmp_path / "output").iterdir()) == ["a.fmt-276"]

    def test_late_output_of_failed_hop_is_removed(self, tmp_path, context):
        converter = FakeConverter("Slow", {"fmt/40": ["fmt/276"]}, delay=0.5)
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")
        _, task = register(context, source, "fmt/40", "fmt/276")

        outcome = converter.convert_file(task, "fmt/276", context)

        assert outcome.status == HopStatus.FAILED
        assert "timed out after 0.3s" in outcome.failure_reason
        assert sorted(p.name for p in (tmp_path / "output").iterdir()) == ["a.doc"]
