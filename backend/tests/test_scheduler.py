"""
Tests for the generation-based conversion scheduler.

Covers the working-set update rules, drain guarantees, blocking mutual
exclusion, verification-before-success and files added mid-run.
All converters are fakes; no external tool is invoked.
"""

import threading
from pathlib import Path

import pytest

from archconv.execution.base import HopOutput
from archconv.execution.consistency import ConsistencyChecker
from archconv.execution.results import HopStatus
from archconv.execution.routes import ChainRule
from archconv.execution.scheduler import ConversionScheduler
from archconv.execution.tasks import ConversionTask, TaskState
from archconv.files.models import FileRecord
from archconv.files.staging import import_files

from conftest import FakeConverter, make_settings, write_file


def prepare(context, show_progress=False, **scheduler_options):
    """Import the output tree, resolve targets and routes, fill the working set."""
    records = import_files(context.output_dir, context.identifier, context.registry)
    context.targets.apply(records)
    context.routes.build_routes(records)
    scheduler = ConversionScheduler(
        context, context.routes.converters, show_progress=show_progress, **scheduler_options,
    )
    merge_groups = scheduler.setup_working_set()
    return scheduler, records, merge_groups


def only_record(context):
    records = context.registry.list_records()
    assert len(records) == 1
    return records[0]


# =============================================================================
# Working set update rules
# =============================================================================

class TestUpdateWorkingSet:
    """End-of-generation rules applied to hand-built tasks."""

    def _add(self, context, route, **flags):
        record = FileRecord(path=f"/out/{len(context.registry)}.doc", current_format="fmt/40")
        context.registry.add(record)
        task = ConversionTask(
            file_id=record.id,
            path=record.path,
            current_format="fmt/40",
            target_format=route[-1] if route else "fmt/40",
            route=list(route),
            **flags,
        )
        context.working_set.add(task)
        return record, task

    def test_untouched_task_is_unsupported(self, make_context):
        """A task nobody converted leaves the set flagged not_supported."""
        context = make_context([])
        record, task = self._add(context, ["fmt/276"])
        scheduler = ConversionScheduler(context, context.routes.converters, show_progress=False)

        assert scheduler.update_working_set() == 1
        assert task.file_id not in context.working_set
        assert task.state == TaskState.UNSUPPORTED
        assert record.not_supported is True
        assert record.failed is False

    def test_failed_task_is_removed_and_flagged(self, make_context):
        context = make_context([])
        record, task = self._add(context, ["fmt/276"], modified=True, failed=True)
        scheduler = ConversionScheduler(context, context.routes.converters, show_progress=False)

        scheduler.update_working_set()

        assert task.file_id not in context.working_set
        assert record.failed is True
        assert record.not_supported is False

    def test_completed_hop_pops_route(self, make_context):
        """A converted task advances one hop and stays while hops remain."""
        context = make_context([])
        record, task = self._add(context, ["fmt/412", "fmt/477"], modified=True)
        scheduler = ConversionScheduler(context, context.routes.converters, show_progress=False)

        assert scheduler.update_working_set() == 0
        assert task.current_format == "fmt/412"
        assert task.route == ["fmt/477"]
        assert task.modified is False
        assert task.state == TaskState.PENDING_DISPATCH
        assert record.current_format == "fmt/412"
        assert record.route == ["fmt/477"]

    def test_last_hop_removes_task(self, make_context):
        context = make_context([])
        record, task = self._add(context, ["fmt/276"], modified=True)
        scheduler = ConversionScheduler(context, context.routes.converters, show_progress=False)

        scheduler.update_working_set()

        assert context.working_set.is_empty
        assert task.state == TaskState.DONE
        assert record.current_format == "fmt/276"
        assert record.route == []

    def test_added_during_run_survives_untouched(self, make_context):
        """Files added this generation keep their route and lose the flag."""
        context = make_context([])
        record, task = self._add(context, ["fmt/412", "fmt/477"], added_during_run=True)
        scheduler = ConversionScheduler(context, context.routes.converters, show_progress=False)

        assert scheduler.update_working_set() == 0
        assert task.file_id in context.working_set
        assert task.route == ["fmt/412", "fmt/477"]
        assert task.current_format == "fmt/40"
        assert task.added_during_run is False
        assert record.added_during_run is False


# =============================================================================
# Scenarios
# =============================================================================

class TestScenarios:
    """Whole scheduler runs over small file sets."""

    def test_two_hop_route_takes_two_generations(self, tmp_path, make_context):
        """fmt/40 -> fmt/477 through fmt/412: two generations, then converted."""
        word = FakeConverter("Word", {"fmt/40": ["fmt/412"], "fmt/412": ["fmt/477"]})
        chains = [ChainRule(("fmt/40",), "fmt/477", ("fmt/412", "fmt/477"))]
        context = make_context([word], targets={"fmt/40": "fmt/477"}, chains=chains)
        write_file(tmp_path / "output" / "letter.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        assert len(reports) == 2
        record = only_record(context)
        assert record.current_format == "fmt/477"
        assert record.route == []
        assert not Path(tmp_path / "output" / "letter.doc").exists()
        assert Path(record.path).is_file()

        ConsistencyChecker(context).finalize(context.registry.list_records())
        assert record.is_converted is True
        assert record.new_format == "fmt/477"

    def test_no_target_is_never_dispatched(self, tmp_path, make_context):
        """A format with no configured target is flagged output_not_set."""
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([word], targets={"fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "notes.txt", "x-fmt/111")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        record = only_record(context)
        assert record.output_not_set is True
        assert record.target_format is None
        assert reports == []
        assert word.calls == []

    def test_persistent_failure_marks_file_failed(self, tmp_path, make_context):
        """Three attempts, then the file is failed and never dispatched again."""
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]}, fail_times=10)
        context = make_context([word], targets={"fmt/40": "fmt/276"})
        source = write_file(tmp_path / "output" / "broken.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        record = only_record(context)
        assert len(reports) == 1
        assert len(word.calls) == 3
        assert record.failed is True
        assert record.current_format == "fmt/40"
        assert source.is_file()
        assert context.run_log.error_happened is True

    def test_timeout_counts_as_failed_attempt(self, tmp_path, make_context):
        """An attempt over the timeout is retried, then the file fails."""
        slow = FakeConverter("Slow", {"fmt/40": ["fmt/276"]}, delay=0.5)
        output = tmp_path / "output"
        output.mkdir()
        settings = make_settings(
            str(tmp_path / "input"), str(output), {"fmt/40": "fmt/276"},
            timeout_minutes=0.001,
        )
        context = make_context([slow], settings=settings)
        write_file(output / "slow.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        record = only_record(context)
        assert record.failed is True
        outcome = scheduler.outcomes[0]
        assert outcome.status == HopStatus.FAILED
        assert outcome.attempts == 3
        assert "timed out" in outcome.failure_reason

    def test_retry_then_success(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]}, fail_times=2)
        context = make_context([word], targets={"fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "flaky.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        record = only_record(context)
        assert record.failed is False
        assert record.current_format == "fmt/276"
        assert scheduler.outcomes[0].attempts == 3
        assert scheduler.outcomes[0].status == HopStatus.SUCCESS

    def test_unsupported_hop_drains_in_one_generation(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([word], targets={"fmt/12": "fmt/276"})
        write_file(tmp_path / "output" / "photo.png", "fmt/12")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        assert len(reports) == 1
        assert reports[0].dispatched == 0
        assert only_record(context).not_supported is True
        assert context.working_set.is_empty

    def test_file_already_in_target_gets_no_route(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([word], targets={"fmt/276": "fmt/276"})
        write_file(tmp_path / "output" / "done.pdf", "fmt/276")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        assert reports == []
        assert word.calls == []
        assert only_record(context).route == []

    def test_tool_is_recorded_before_dispatch(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]}, fail_times=10)
        context = make_context([word], targets={"fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "a.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        assert only_record(context).conversion_tools == ["Word 1.0"]

    def test_first_registered_converter_wins(self, tmp_path, make_context):
        first = FakeConverter("First", {"fmt/40": ["fmt/276"]})
        second = FakeConverter("Second", {"fmt/40": ["fmt/276"]})
        context = make_context([first, second], targets={"fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "a.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        assert len(first.calls) == 1
        assert second.calls == []


# =============================================================================
# Verification and concurrency
# =============================================================================

class TestVerification:
    """A hop only succeeds when its output identifies as the hop format."""

    def test_wrong_output_format_fails_and_is_discarded(self, tmp_path, make_context):
        liar = FakeConverter("Liar", {"fmt/40": ["fmt/276"]}, wrong_format="fmt/18")
        context = make_context([liar], targets={"fmt/40": "fmt/276"})
        source = write_file(tmp_path / "output" / "a.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        record = only_record(context)
        assert record.failed is True
        assert source.is_file()
        assert not (tmp_path / "output" / "a.fmt-276").exists()
        assert "fmt/18" in scheduler.outcomes[0].failure_reason


class TestBlockingConversions:
    """Blocking conversions of one converter never overlap."""

    def _run(self, tmp_path, make_context, blocking):
        pairs = {"fmt/40": ["fmt/276"]}
        converter = FakeConverter(
            "Office", pairs, blocking=pairs if blocking else None, delay=0.2,
        )
        context = make_context([converter], targets={"fmt/40": "fmt/276"})
        for i in range(4):
            write_file(tmp_path / "output" / f"doc{i}.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()
        assert all(r.current_format == "fmt/276" for r in context.registry.list_records())
        return converter

    def test_blocking_pairs_run_one_at_a_time(self, tmp_path, make_context):
        converter = self._run(tmp_path, make_context, blocking=True)
        assert converter.max_active == 1

    def test_timed_out_attempts_do_not_overlap_later_ones(self, tmp_path, make_context, monkeypatch):
        """A first attempt that ignores cancellation still holds the converter."""
        monkeypatch.setattr("archconv.execution.base.SETTLE_SECONDS", 0.05)
        pairs = {"fmt/40": ["fmt/276"]}
        converter = FakeConverter("Office", pairs, blocking=pairs, first_attempt_delay=0.8)
        output = tmp_path / "output"
        settings = make_settings(
            str(tmp_path / "input"), str(output), {"fmt/40": "fmt/276"},
            timeout_minutes=0.005,
        )
        context = make_context([converter], settings=settings)
        for i in range(2):
            write_file(output / f"doc{i}.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        assert converter.max_active == 1
        assert [o.attempts for o in scheduler.outcomes] == [2, 2]
        assert all(r.current_format == "fmt/276" for r in context.registry.list_records())

    def test_non_blocking_pairs_run_concurrently(self, tmp_path, make_context):
        converter = self._run(tmp_path, make_context, blocking=False)
        assert converter.max_active > 1


# =============================================================================
# Dispatch boundary
# =============================================================================

class FragileConverter(FakeConverter):
    """Raises out of convert_file while committing bad.doc."""

    def _accept_output(self, task, target_format, produced, context):
        if Path(task.path).name == "bad.doc":
            raise PermissionError("output folder is read-only")
        super()._accept_output(task, target_format, produced, context)


class GatedConverter(FakeConverter):
    """Holds every attempt until the gate opens, ignoring cancellation."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = threading.Event()
        self.returned = threading.Event()

    def _convert(self, task, target_format, context, attempt, cancel):
        self.gate.wait(10)
        return super()._convert(task, target_format, context, attempt, cancel)

    def convert_file(self, *args, **kwargs):
        try:
            return super().convert_file(*args, **kwargs)
        finally:
            self.returned.set()


class TestDispatchBoundary:

    def test_unexpected_error_fails_only_that_file(self, tmp_path, make_context):
        converter = FragileConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([converter], targets={"fmt/40": "fmt/276"})
        bad = write_file(tmp_path / "output" / "bad.doc", "fmt/40")
        write_file(tmp_path / "output" / "ok.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        scheduler.run()

        records = {Path(r.original_path).name: r for r in context.registry.list_records()}
        assert records["bad.doc"].failed is True
        assert records["bad.doc"].current_format == "fmt/40"
        assert records["ok.doc"].failed is False
        assert records["ok.doc"].current_format == "fmt/276"
        assert bad.is_file()
        assert not (tmp_path / "output" / "bad.fmt-276").exists()

        failed = next(o for o in scheduler.outcomes if o.status == HopStatus.FAILED)
        assert "read-only" in failed.failure_reason
        errors = [e.message for e in context.run_log.recent(errors_only=True)]
        assert any(m.startswith("Unexpected error in Word") for m in errors)

    def test_dispatch_past_deadline_is_abandoned(self, tmp_path, make_context, monkeypatch):
        monkeypatch.setattr("archconv.execution.base.SETTLE_SECONDS", 0.01)
        pairs = {"fmt/40": ["fmt/276"]}
        converter = GatedConverter("Stuck", pairs, blocking=pairs)
        output = tmp_path / "output"
        settings = make_settings(
            str(tmp_path / "input"), str(output), {"fmt/40": "fmt/276"},
            timeout_minutes=0.0005,
        )
        context = make_context([converter], settings=settings)
        source = write_file(output / "a.doc", "fmt/40")

        scheduler, _, _ = prepare(context, grace_seconds=0.1, poll_interval=0.02)
        try:
            scheduler.run()
        finally:
            converter.gate.set()

        record = only_record(context)
        assert [o.status for o in scheduler.outcomes] == [HopStatus.ABANDONED]
        assert "no result after" in scheduler.outcomes[0].failure_reason
        assert record.failed is True
        assert context.working_set.is_empty

        # The late worker finishes but must not commit its output
        assert converter.returned.wait(5)
        assert source.is_file()
        assert record.path == str(source)
        assert record.current_format == "fmt/40"
        assert not (output / "a.fmt-276").exists()


# =============================================================================
# Files added mid-run
# =============================================================================

class AttachmentConverter(FakeConverter):
    """Message converter that extracts one Word attachment per message."""

    def _accept_output(self, task, target_format, produced, context):
        message = Path(task.path)
        super()._accept_output(task, target_format, produced, context)
        attachment = write_file(message.parent / f"{message.stem}-attachments" / "invoice.doc", "fmt/40")
        context.add_derived_task(str(attachment), parent_id=task.file_id, tools=[self.name_and_version])


class SplitConverter(FakeConverter):
    """PDF rasterizer producing one image per page."""

    def _convert(self, task, target_format, context, attempt, cancel):
        source = Path(task.path)
        folder = source.parent / f"{source.stem}-pages"
        pages = [write_file(folder / f"{source.stem}_{n}.png", target_format) for n in (1, 2)]
        return HopOutput(paths=[str(p) for p in pages], format=target_format, split=True)


class TestDerivedFiles:
    """Attachments and split pages join the run with their own routes."""

    def test_attachment_is_converted_in_next_generation(self, tmp_path, make_context):
        mail = AttachmentConverter("Mail", {"fmt/950": ["fmt/18"]})
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([mail, word], targets={"fmt/950": "fmt/18", "fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "message.eml", "fmt/950")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        assert len(reports) == 2
        message, attachment = context.registry.list_records()
        assert message.current_format == "fmt/18"
        assert attachment.parent_id == message.id
        assert attachment.current_format == "fmt/276"
        assert attachment.added_during_run is False
        assert attachment.conversion_tools[0] == "Mail 1.0"
        assert len(word.calls) == 1

    def test_split_pages_replace_their_source(self, tmp_path, make_context):
        raster = SplitConverter("Raster", {"fmt/276": ["fmt/12"]})
        context = make_context([raster], targets={"fmt/276": "fmt/12"})
        source = write_file(tmp_path / "output" / "scan.pdf", "fmt/276")

        scheduler, _, _ = prepare(context)
        reports = scheduler.run()

        assert len(reports) == 1
        parent, *pages = context.registry.list_records()
        assert parent.is_deleted is True
        assert parent.display is False
        assert not source.exists()
        assert len(pages) == 2
        for page in pages:
            assert page.is_part_of_split is True
            assert page.parent_id == parent.id
            assert page.target_format == "fmt/12"
            assert page.route == []
        assert context.working_set.is_empty


# =============================================================================
# Merge candidates and progress
# =============================================================================

class TestSetup:

    def test_merge_candidates_skip_working_set(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        output = tmp_path / "output"
        output.mkdir()
        settings = make_settings(
            str(tmp_path / "input"), str(output), {"fmt/40": "fmt/276"},
            folder_overrides=[{"folder_path": "scans", "pronoms": ["fmt/12"], "convert_to": "fmt/276", "merge": True}],
        )
        context = make_context([word], settings=settings)
        write_file(output / "scans" / "p1.png", "fmt/12")
        write_file(output / "scans" / "p2.png", "fmt/12")
        write_file(output / "letter.doc", "fmt/40")

        scheduler, _, merge_groups = prepare(context)

        assert list(merge_groups) == ["scans"]
        assert len(merge_groups["scans"]) == 2
        assert all(r.should_merge for r in merge_groups["scans"])
        assert len(context.working_set) == 1

    def test_progress_snapshot(self, tmp_path, make_context):
        word = FakeConverter("Word", {"fmt/40": ["fmt/276"]})
        context = make_context([word], targets={"fmt/40": "fmt/276"})
        write_file(tmp_path / "output" / "a.doc", "fmt/40")

        scheduler, _, _ = prepare(context)
        before = scheduler.progress()
        scheduler.run()
        after = scheduler.progress()

        assert before.running is False
        assert before.in_working_set == 1
        assert after.generation == 1
        assert after.completed == 1
        assert after.in_working_set == 0
        assert after.percent == pytest.approx(100.0)
