from __future__ import annotations

import json
from pathlib import Path

from dor_merger.merge import ChildResult, MergeReport
from dor_merger.reporting import (
    emit_reports,
    summarize_cli,
    write_markdown_report,
)


def sample_report() -> MergeReport:
    return MergeReport(
        primary_id="druid:aa000aa0001",
        mode="virtual",
        purged=True,
        results=[
            ChildResult(
                child_id="druid:bb000bb0001",
                status="merged",
                resources=["aa000aa0001_1", "aa000aa0001_2"],
            ),
            ChildResult(
                child_id="bb000bb0002",
                status="failed",
                message="druid:bb000bb0002 is not open for modification",
                trace="Traceback ...",
            ),
        ],
    )


def test_summarize_cli_and_markdown(tmp_path: Path) -> None:
    report = sample_report()

    summary = summarize_cli(report)
    assert "Merge Summary (virtual)" in summary
    assert "Children merged  : 1" in summary
    assert "Resources added  : 2" in summary
    assert "- bb000bb0002: failed (druid:bb000bb0002 is not open for modification)" in summary

    report_path = tmp_path / "report.md"
    write_markdown_report(report_path, report)
    text = report_path.read_text()
    assert "**druid:bb000bb0001**" in text
    assert "`aa000aa0001_2`" in text


def test_emit_reports_writes_json_and_markdown(tmp_path: Path) -> None:
    report_dir = tmp_path / "reports"

    emit_reports(sample_report(), report_dir)

    data = json.loads((report_dir / "aa000aa0001_merge_report.json").read_text())
    assert data == sample_report().to_dict()
    assert data["resources_added"] == 2
    assert [entry["status"] for entry in data["merges"]] == ["merged", "failed"]
    assert (report_dir / "aa000aa0001_report.md").exists()

