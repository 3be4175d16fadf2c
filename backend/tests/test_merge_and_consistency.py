"""
Tests for the merge pipeline and the final consistency check.
"""

from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from archconv.execution.consistency import ConsistencyChecker
from archconv.execution.errors import MergeError
from archconv.execution.merge import MergePipeline, merge_output_name, plan_groups
from archconv.files.models import FileRecord

from conftest import make_settings, write_file


class MarkerCombiner:
    """Combiner writing a marker file listing its inputs."""

    name_and_version = "pypdf 4.0"

    def __init__(self, produce="fmt/276"):
        self.produce = produce
        self.calls = []

    def combine_files(self, paths, target_format, output_path):
        self.calls.append((list(paths), target_format, output_path))
        write_file(Path(output_path), self.produce, body="\n".join(paths))


def merge_records(context, folder, sizes, target="fmt/276"):
    records = []
    for i, size in enumerate(sizes):
        path = write_file(folder / f"page{i}.png", "fmt/12")
        record = FileRecord(
            path=str(path), original_path=str(path), original_format="fmt/12",
            current_format="fmt/12", target_format=target, original_size=size,
            should_merge=True,
        )
        context.registry.add(record)
        records.append(record)
    return records


# =============================================================================
# Group planning
# =============================================================================

class TestPlanGroups:

    def _records(self, *sizes):
        return [FileRecord(path=f"/f{i}", original_size=s) for i, s in enumerate(sizes)]

    def test_everything_fits_in_one_group(self):
        groups = plan_groups(self._records(10, 20, 30), max_size=100)
        assert [len(g) for g in groups] == [3]

    def test_new_group_before_exceeding_limit(self):
        """Two files whose combined size exceeds the limit give two groups."""
        groups = plan_groups(self._records(60, 60), max_size=100)
        assert [len(g) for g in groups] == [1, 1]

    def test_oversized_file_forms_its_own_group(self):
        groups = plan_groups(self._records(10, 500, 10), max_size=100)
        assert [[r.original_size for r in g] for g in groups] == [[10], [500], [10]]

    def test_order_is_preserved(self):
        records = self._records(40, 40, 40, 40)
        groups = plan_groups(records, max_size=100)
        assert [r for g in groups for r in g] == records

    def test_empty(self):
        assert plan_groups([], max_size=100) == []


class TestMergeOutputName:

    def test_folder_date_index(self):
        name = merge_output_name(Path("/out/letters"), 1, day=date(2024, 3, 5))
        assert name == "letters_2024-03-05_1.pdf"


# =============================================================================
# Merge pipeline
# =============================================================================

class TestMergePipeline:

    def test_oversized_folder_gives_two_documents(self, tmp_path, make_context):
        output = tmp_path / "output"
        output.mkdir()
        settings = make_settings(str(tmp_path / "input"), str(output), max_merge_size_mb=1)
        context = make_context([], settings=settings)
        records = merge_records(context, output / "scans", [700 * 1024, 700 * 1024])
        combiner = MarkerCombiner()

        outputs = MergePipeline(context, combiner).run({"scans": records})

        assert len(outputs) == 2
        names = sorted(Path(o.path).name for o in outputs)
        today = date.today().isoformat()
        assert names == [f"scans_{today}_1.pdf", f"scans_{today}_2.pdf"]
        assert len(combiner.calls) == 2

    def test_inputs_are_deleted_and_flagged(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10, 10, 10])

        outputs = MergePipeline(context, MarkerCombiner()).run({"scans": records})

        output = outputs[0]
        for record in records:
            assert not Path(record.path).exists()
            assert record.is_merged is True
            assert record.merged_to == Path(output.path).name
            assert record.conversion_tools == ["pypdf 4.0"]
        assert output.should_merge is True
        assert output.is_merged is True
        assert output.target_format == "fmt/276"
        assert output.id in context.registry

    def test_output_in_wrong_format_is_not_merged(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10, 10])

        outputs = MergePipeline(context, MarkerCombiner(produce="fmt/18")).run({"scans": records})

        assert outputs[0].is_merged is False
        assert outputs[0].original_format == "fmt/18"

    def test_combiner_failure_is_logged(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10])
        combiner = MagicMock()
        combiner.name_and_version = "pypdf 4.0"
        combiner.combine_files.side_effect = OSError("disk full")

        outputs = MergePipeline(context, combiner).run({"scans": records})

        assert outputs == []
        assert Path(records[0].path).is_file()
        assert records[0].is_merged is False
        assert context.run_log.error_happened is True
        assert "disk full" in context.run_log.recent(errors_only=True)[-1].message

    def test_merge_group_raises_merge_error(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10])
        combiner = MagicMock()
        combiner.combine_files.side_effect = RuntimeError("broken")

        with pytest.raises(MergeError):
            MergePipeline(context, combiner).merge_group(records, 1)

    def test_without_combiner_every_folder_is_an_error(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10])

        assert MergePipeline(context, None).run({"scans": records}) == []
        assert context.run_log.error_happened is True

    def test_missing_inputs_are_skipped(self, tmp_path, make_context):
        context = make_context([])
        records = merge_records(context, tmp_path / "output" / "scans", [10, 10])
        Path(records[0].path).unlink()
        combiner = MarkerCombiner()

        MergePipeline(context, combiner).run({"scans": records})

        assert combiner.calls[0][0] == [records[1].path]
        assert records[0].is_merged is False


# =============================================================================
# Consistency check
# =============================================================================

class TestConsistencyChecker:

    def _record(self, context, path, pronom, target, **flags):
        record = FileRecord(path=str(path), original_format=pronom, current_format=pronom,
                            target_format=target, **flags)
        context.registry.add(record)
        return record

    def test_verdict_comes_from_reidentification(self, tmp_path, make_context):
        """The checker trusts the file on disk, not the scheduler's view."""
        context = make_context([])
        good = self._record(context, write_file(tmp_path / "output" / "a.pdf", "fmt/276"), "fmt/40", "fmt/276")
        lying = self._record(context, write_file(tmp_path / "output" / "b.pdf", "fmt/18"), "fmt/40", "fmt/276")
        lying.current_format = "fmt/276"

        converted = ConsistencyChecker(context).finalize([good, lying])

        assert converted == 1
        assert good.is_converted is True
        assert good.new_checksum is not None
        assert lying.is_converted is False
        assert lying.new_format == "fmt/18"

    def test_merge_and_deleted_records_are_skipped(self, tmp_path, make_context, identifier):
        context = make_context([])
        merged = self._record(context, write_file(tmp_path / "output" / "m.pdf", "fmt/276"),
                              "fmt/12", "fmt/276", should_merge=True)
        deleted = self._record(context, tmp_path / "output" / "gone.pdf", "fmt/276", "fmt/12", is_deleted=True)

        assert ConsistencyChecker(context).finalize([merged, deleted]) == 0
        assert identifier.calls == []
        assert merged.new_format is None

    def test_identification_failure_is_logged(self, tmp_path, make_context, identifier):
        context = make_context([])
        path = write_file(tmp_path / "output" / "a.pdf", "fmt/276")
        record = self._record(context, path, "fmt/40", "fmt/276")
        identifier.fail_paths.add(str(path))

        assert ConsistencyChecker(context).finalize([record]) == 0
        assert record.is_converted is False
        assert context.run_log.error_happened is True
