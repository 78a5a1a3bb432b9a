from __future__ import annotations

import json
import logging
from pathlib import Path

from .merge import MergeReport


def summarize_cli(report: MergeReport) -> str:
    title = f"Merge Summary ({report.mode})"
    lines = [title, "=" * len(title)]
    lines.append(f"Primary          : {report.primary_id}")
    lines.append(f"Purged           : {'yes' if report.purged else 'no'}")
    lines.append(f"Children merged  : {len(report.merged)}")
    lines.append(f"Children failed  : {len(report.failed)}")
    lines.append(f"Resources added  : {report.resources_added}")
    if report.results:
        lines.append("")
        for result in report.results:
            detail = f"- {result.child_id or '<blank>'}: {result.status}"
            if result.succeeded:
                detail += f" ({len(result.resources)} resource(s))"
            elif result.message:
                detail += f" ({result.message})"
            lines.append(detail)
    return "\n".join(lines)


def write_json_report(output_path: Path, report: MergeReport) -> None:
    output_path.write_text(json.dumps(report.to_dict(), indent=2))
    logging.info("Wrote merge report to %s", output_path)


def write_markdown_report(output_path: Path, report: MergeReport) -> None:
    lines = [f"# Merge Report: {report.primary_id}", ""]
    lines.append(f"- Mode: {report.mode}")
    lines.append(f"- Purged: {'yes' if report.purged else 'no'}")
    lines.append(f"- Resources added: {report.resources_added}")
    lines.append("")

    lines.append("## Children")
    lines.append("")
    for result in report.results:
        lines.append(f"- **{result.child_id or '<blank>'}** — {result.status}")
        if result.resources:
            lines.append(f"  - Resources: {', '.join(f'`{r}`' for r in result.resources)}")
        if result.message:
            lines.append(f"  - Notes: {result.message}")
        lines.append("")

    output_path.write_text("\n".join(lines).rstrip() + "\n")
    logging.info("Wrote report to %s", output_path)


def emit_reports(report: MergeReport, report_dir: Path | None) -> None:
    logging.info("\n%s", summarize_cli(report))
    if report_dir is None:
        return
    report_dir = report_dir.expanduser()
    report_dir.mkdir(parents=True, exist_ok=True)
    stem = report.primary_id.split(":", 1)[-1]
    write_json_report(report_dir / f"{stem}_merge_report.json", report)
    write_markdown_report(report_dir / f"{stem}_report.md", report)
