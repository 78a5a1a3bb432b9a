from __future__ import annotations

import io
from pathlib import Path

import pytest

from dor_merger.cli import merge_tool_main, virtual_merge_main
from dor_merger.content_metadata import ContentMetadata
from dor_merger.repository import FilesystemRepository

PARENT = "aa000aa0001"
CHILDREN = ["bb000bb0001", "bb000bb0002"]


def content_xml(druid: str, resource_count: int) -> str:
    resources = "".join(
        f'<resource id="{druid}_{i}" sequence="{i}" type="page"><file id="{druid}_{i}.jp2"/></resource>'
        for i in range(1, resource_count + 1)
    )
    return f'<contentMetadata objectId="druid:{druid}" type="book">{resources}</contentMetadata>'


@pytest.fixture
def repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FilesystemRepository:
    settings = tmp_path / "settings"
    (settings / "environments").mkdir(parents=True)
    (settings / "config.yml").write_text("log: '-'\ndebug: false\npurge: false\n")
    (settings / "environments" / "test.yml").write_text(
        f"repository_root: {tmp_path / 'objects'}\n"
    )
    monkeypatch.setenv("DOR_MERGER_SETTINGS", str(settings))

    repo = FilesystemRepository(tmp_path / "objects")
    repo.create(PARENT, ContentMetadata.from_xml(content_xml(PARENT, 1)))
    for child in CHILDREN:
        repo.create(child, ContentMetadata.from_xml(content_xml(child, 2)))
    return repo


def virtual_resources(repository: FilesystemRepository) -> list:
    root = repository.find(PARENT).content_metadata.root
    return root.xpath("resource/externalFile/@objectId")


def test_virtual_merge_positional_children(repository: FilesystemRepository) -> None:
    exit_code = virtual_merge_main(["-e", "test", PARENT, *CHILDREN])

    assert exit_code == 0
    assert len(virtual_resources(repository)) == 4
    assert len(repository.find(PARENT).content_metadata.resources()) == 5


def test_virtual_merge_with_unmodifiable_child_still_succeeds(
    repository: FilesystemRepository,
) -> None:
    locked = repository.find(CHILDREN[1])
    locked.locked = True
    locked.save()

    exit_code = virtual_merge_main(["-e", "test", PARENT, *CHILDREN])

    assert exit_code == 0
    assert virtual_resources(repository) == ["druid:bb000bb0001"] * 2


def test_virtual_merge_purge_flag(repository: FilesystemRepository) -> None:
    exit_code = virtual_merge_main(["-e", "test", "--purge", PARENT, CHILDREN[0]])

    assert exit_code == 0
    resources = repository.find(PARENT).content_metadata.resources()
    assert len(resources) == 2
    assert repository.find(PARENT).content_metadata.content_type == "image"


def test_virtual_merge_reads_input_file(repository: FilesystemRepository, tmp_path: Path) -> None:
    children = tmp_path / "children.txt"
    children.write_text("\n".join(CHILDREN) + "\n")

    exit_code = virtual_merge_main(["-e", "test", "-i", str(children), PARENT])

    assert exit_code == 0
    assert len(virtual_resources(repository)) == 4


def test_virtual_merge_reads_stdin(
    repository: FilesystemRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO(f"{CHILDREN[1]}\n"))

    exit_code = virtual_merge_main(["-e", "test", "--input=-", PARENT])

    assert exit_code == 0
    assert virtual_resources(repository) == ["druid:bb000bb0002"] * 2


def test_virtual_merge_keep_blank_lines(repository: FilesystemRepository, tmp_path: Path) -> None:
    children = tmp_path / "children.txt"
    children.write_text(f"{CHILDREN[0]}\n\n")

    exit_code = virtual_merge_main(
        ["-e", "test", "--keep-blank-lines", "--report-dir", str(tmp_path / "reports"), "-i", str(children), PARENT]
    )

    assert exit_code == 0
    report = (tmp_path / "reports" / "aa000aa0001_merge_report.json").read_text()
    assert '"status": "failed"' in report
    assert '"status": "merged"' in report


def test_virtual_merge_missing_input_file(repository: FilesystemRepository, tmp_path: Path) -> None:
    exit_code = virtual_merge_main(["-e", "test", "-i", str(tmp_path / "missing.txt"), PARENT])

    assert exit_code == 1
    assert virtual_resources(repository) == []


def test_virtual_merge_requires_parent(
    repository: FilesystemRepository, capsys: pytest.CaptureFixture[str]
) -> None:
    assert virtual_merge_main(["-e", "test"]) == 2
    assert "usage: virtual-merge" in capsys.readouterr().err


def test_virtual_merge_requires_children(
    repository: FilesystemRepository, capsys: pytest.CaptureFixture[str]
) -> None:
    assert virtual_merge_main(["-e", "test", PARENT]) == 2
    assert "child identifiers" in capsys.readouterr().err


def test_virtual_merge_missing_parent_is_fatal(repository: FilesystemRepository) -> None:
    assert virtual_merge_main(["-e", "test", "cc000cc0001", *CHILDREN]) == 1
    assert repository.find(CHILDREN[0]).relationships == []


def test_unknown_environment(repository: FilesystemRepository) -> None:
    assert virtual_merge_main(["-e", "staging", PARENT, *CHILDREN]) == 1


def test_merge_tool_positional(repository: FilesystemRepository) -> None:
    exit_code = merge_tool_main(["-e", "test", PARENT, *CHILDREN])

    assert exit_code == 0
    assert len(repository.find(PARENT).content_metadata.resources()) == 5
    assert repository.find(CHILDREN[0]).tags == ["Decommissioned : Merged into druid:aa000aa0001"]


def test_merge_tool_csv_continues_past_failed_primary(
    repository: FilesystemRepository, tmp_path: Path
) -> None:
    plan = tmp_path / "plan.csv"
    plan.write_text(f"cc000cc0001,{CHILDREN[1]}\n{PARENT},{CHILDREN[0]}\n")

    exit_code = merge_tool_main(["-e", "test", "--csv", str(plan)])

    assert exit_code == 1
    assert len(repository.find(PARENT).content_metadata.resources()) == 3
    assert repository.find(CHILDREN[1]).tags == []


def test_merge_tool_usage_errors(
    repository: FilesystemRepository, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert merge_tool_main(["-e", "test"]) == 2
    assert merge_tool_main(["-e", "test", "--csv", str(tmp_path / "plan.csv"), PARENT]) == 2
    assert "usage: merge-tool" in capsys.readouterr().err


def test_unwritable_report_dir_fails_after_merge(
    repository: FilesystemRepository, tmp_path: Path
) -> None:
    blocker = tmp_path / "reports"
    blocker.write_text("not a directory")

    exit_code = virtual_merge_main(["-e", "test", "--report-dir", str(blocker), PARENT, *CHILDREN])

    assert exit_code == 1
    assert len(virtual_resources(repository)) == 4
