from __future__ import annotations

import copy
import filecmp
import logging
import shutil
import traceback
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Tuple

from .content_metadata import ContentMetadata
from .errors import (
    ChildProcessingError,
    DorMergerError,
    FatalPreconditionError,
    FatalSaveError,
    InvalidIdentifierError,
)
from .identifiers import normalize_druid
from .repository import DigitalObject, Repository

CONSTITUENT_PREDICATE = "isConstituentOf"
MERGED_PREDICATE = "isMergedInto"
DECOMMISSION_TAG = "Decommissioned : Merged into {primary}"

# Transfers append every file they create to the list so a failed child can be undone.
Transfer = Callable[[DigitalObject, DigitalObject, List[Path]], List[str]]


@dataclass
class ChildResult:
    child_id: str
    status: str
    resources: List[str] = field(default_factory=list)
    message: str = ""
    trace: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == "merged"


@dataclass
class MergeReport:
    primary_id: str
    mode: str
    purged: bool = False
    results: List[ChildResult] = field(default_factory=list)

    @property
    def merged(self) -> List[ChildResult]:
        return [result for result in self.results if result.succeeded]

    @property
    def failed(self) -> List[ChildResult]:
        return [result for result in self.results if not result.succeeded]

    @property
    def resources_added(self) -> int:
        return sum(len(result.resources) for result in self.merged)

    def to_dict(self) -> Dict[str, object]:
        return {
            "primary": self.primary_id,
            "mode": self.mode,
            "purged": self.purged,
            "resources_added": self.resources_added,
            "merges": [asdict(result) for result in self.results],
        }


def virtual_merge(
    primary_id: str,
    child_ids: Iterable[str],
    repository: Repository,
    *,
    purge: bool = False,
) -> MergeReport:
    """Link every resource of each child into the primary as a virtual resource.

    Each child gets an ``isConstituentOf`` relationship to the primary and is
    saved on its own. The primary is saved once after every child has been
    attempted, whether or not individual children failed.
    """
    primary = _load_primary(primary_id, repository)
    if purge:
        logging.info("Purging contentMetadata of %s", primary.identifier)
        primary.content_metadata = ContentMetadata.empty(primary.identifier)

    report = MergeReport(primary_id=primary.identifier, mode="virtual", purged=purge)
    _run_children(primary, child_ids, repository, report, _link_virtual_resources)
    _save_primary(primary)
    return report


def merge_into_primary(
    primary_id: str,
    secondary_ids: Iterable[str],
    repository: Repository,
) -> MergeReport:
    """Copy resources and content files of each secondary into the primary.

    Secondaries are tagged as decommissioned and linked to the primary with an
    ``isMergedInto`` relationship.
    """
    primary = _load_primary(primary_id, repository)
    report = MergeReport(primary_id=primary.identifier, mode="copy")
    _run_children(primary, secondary_ids, repository, report, _copy_resources)
    _save_primary(primary)
    return report


def _load_primary(primary_id: str, repository: Repository) -> DigitalObject:
    try:
        primary = repository.find(primary_id)
    except DorMergerError as exc:
        raise FatalPreconditionError(f"Unable to load primary object {primary_id!r}: {exc}") from exc
    if not primary.allows_modification():
        raise FatalPreconditionError(
            f"Primary object {primary.identifier} is not open for modification"
        )
    logging.info("Primary object: %s", primary.identifier)
    return primary


def _save_primary(primary: DigitalObject) -> None:
    try:
        primary.save()
    except (OSError, DorMergerError) as exc:
        raise FatalSaveError(f"Failed to save primary object {primary.identifier}: {exc}") from exc
    logging.info("Saved primary object %s", primary.identifier)


def _run_children(
    primary: DigitalObject,
    child_ids: Iterable[str],
    repository: Repository,
    report: MergeReport,
    transfer: Transfer,
) -> None:
    for child_id in child_ids:
        report.results.append(_merge_child(primary, child_id, repository, transfer))
    logging.info(
        "Processed %d child object(s): %d merged, %d failed",
        len(report.results),
        len(report.merged),
        len(report.failed),
    )


def _merge_child(
    primary: DigitalObject,
    child_id: str,
    repository: Repository,
    transfer: Transfer,
) -> ChildResult:
    # A failed child leaves no links or content files behind in the primary.
    snapshot = copy.deepcopy(primary.content_metadata.root)
    created: List[Path] = []
    try:
        child = repository.find(child_id)
        if not child.allows_modification():
            raise ChildProcessingError(f"{child.identifier} is not open for modification")
        if primary.content_metadata.references(child.identifier):
            logging.warning(
                "%s already references %s; merging again adds duplicate entries",
                primary.identifier,
                child.identifier,
            )
        resources = transfer(primary, child, created)
        child.save()
    except Exception as exc:
        trace = traceback.format_exc()
        primary.content_metadata.root = snapshot
        _remove_created_files(created)
        logging.error("Failed to merge %r into %s: %s\n%s", child_id, primary.identifier, exc, trace)
        return ChildResult(
            child_id=_display_id(child_id), status="failed", message=str(exc), trace=trace
        )
    return ChildResult(child_id=child.identifier, status="merged", resources=resources)


def _display_id(child_id: str) -> str:
    try:
        return normalize_druid(child_id)
    except InvalidIdentifierError:
        return child_id


def _remove_created_files(created: List[Path]) -> None:
    for path in reversed(created):
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logging.warning("Could not remove %s after failed merge: %s", path, exc)
        else:
            logging.debug("Removed %s after failed merge", path)


def _link_virtual_resources(
    primary: DigitalObject, child: DigitalObject, created: List[Path]
) -> List[str]:
    added: List[str] = []
    for fragment in child.content_metadata.resources():
        resource_id = primary.content_metadata.add_virtual_resource(child.identifier, fragment)
        logging.info(
            "Linked %s resource %s of %s as %s",
            fragment.resource_type or "untyped",
            fragment.resource_id,
            child.identifier,
            resource_id,
        )
        added.append(resource_id)
    logging.info("Merged %s into %s", child.identifier, primary.identifier)
    child.add_relationship(CONSTITUENT_PREDICATE, primary.identifier)
    return added


def _copy_resources(
    primary: DigitalObject, secondary: DigitalObject, created: List[Path]
) -> List[str]:
    fragments = secondary.content_metadata.resources()
    file_ids = [entry.file_id for fragment in fragments for entry in fragment.files]
    copies = _plan_file_copies(primary, secondary, file_ids)

    added: List[str] = []
    for fragment in fragments:
        resource_id = primary.content_metadata.add_copied_resource(fragment)
        logging.info(
            "Copied resource %s of %s as %s", fragment.resource_id, secondary.identifier, resource_id
        )
        added.append(resource_id)

    for source, destination in copies:
        destination.parent.mkdir(parents=True, exist_ok=True)
        created.append(destination)
        shutil.copy2(source, destination)
        logging.debug("Copied content file %s -> %s", source, destination)

    logging.info("Merged %s into %s", secondary.identifier, primary.identifier)
    secondary.add_tag(DECOMMISSION_TAG.format(primary=primary.identifier))
    secondary.add_relationship(MERGED_PREDICATE, primary.identifier)
    return added


def _plan_file_copies(
    primary: DigitalObject,
    secondary: DigitalObject,
    file_ids: Iterable[str],
) -> List[Tuple[Path, Path]]:
    copies: List[Tuple[Path, Path]] = []
    for file_id in file_ids:
        source = secondary.content_dir / file_id
        destination = primary.content_dir / file_id
        if not source.is_file():
            logging.warning("Content file %s is missing from %s", file_id, secondary.identifier)
            continue
        if destination.exists():
            if filecmp.cmp(source, destination, shallow=False):
                logging.debug("Content file %s already present in %s", file_id, primary.identifier)
                continue
            raise ChildProcessingError(
                f"Content file {file_id} from {secondary.identifier} collides with a "
                f"different file in {primary.identifier}"
            )
        copies.append((source, destination))
    return copies
