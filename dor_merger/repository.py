"""
Filesystem-backed object store standing in for the DOR repository service.

Each object lives in ``<root>/<bare-druid>/``:

    object.json          identifier, locked flag, tags and relationships
    contentMetadata.xml  content metadata document
    content/             content files referenced by the document
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from .content_metadata import ContentMetadata
from .errors import DorMergerError, ObjectNotFoundError
from .identifiers import bare_druid, normalize_druid

OBJECT_FILE = "object.json"
CONTENT_METADATA_FILE = "contentMetadata.xml"
CONTENT_DIR = "content"
FEDORA_URI_PREFIX = "info:fedora/"


@dataclass(frozen=True)
class Relationship:
    predicate: str
    target: str


class DigitalObject:
    def __init__(
        self,
        identifier: str,
        path: Path,
        content_metadata: ContentMetadata,
        *,
        locked: bool = False,
        tags: Optional[List[str]] = None,
        relationships: Optional[List[Relationship]] = None,
    ) -> None:
        self.identifier = identifier
        self.path = path
        self.content_metadata = content_metadata
        self.locked = locked
        self.tags: List[str] = list(tags or [])
        self.relationships: List[Relationship] = list(relationships or [])

    def __repr__(self) -> str:
        return f"DigitalObject({self.identifier!r})"

    @property
    def content_dir(self) -> Path:
        return self.path / CONTENT_DIR

    def allows_modification(self) -> bool:
        return not self.locked

    def add_relationship(self, predicate: str, target: str) -> None:
        if not target.startswith(FEDORA_URI_PREFIX):
            target = FEDORA_URI_PREFIX + target
        self.relationships.append(Relationship(predicate=predicate, target=target))

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def save(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        record = {
            "identifier": self.identifier,
            "locked": self.locked,
            "tags": self.tags,
            "relationships": [asdict(relationship) for relationship in self.relationships],
        }
        # The object record goes last so relationships never land without their metadata.
        _write_staged(
            [
                (self.path / CONTENT_METADATA_FILE, self.content_metadata.to_xml()),
                (self.path / OBJECT_FILE, json.dumps(record, indent=2).encode("utf-8")),
            ]
        )
        logging.debug("Saved %s to %s", self.identifier, self.path)


class Repository(Protocol):
    def find(self, identifier: str) -> DigitalObject:
        ...


class FilesystemRepository:
    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def object_path(self, identifier: str) -> Path:
        return self.root / bare_druid(identifier)

    def find(self, identifier: str) -> DigitalObject:
        druid = normalize_druid(identifier)
        path = self.object_path(druid)
        object_file = path / OBJECT_FILE
        if not object_file.is_file():
            raise ObjectNotFoundError(f"Object not found: {druid}")
        try:
            record = json.loads(object_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise DorMergerError(f"Unreadable object record {object_file}: {exc}") from exc
        if not isinstance(record, dict):
            raise DorMergerError(f"Object record {object_file} is not a JSON object")

        metadata_file = path / CONTENT_METADATA_FILE
        if metadata_file.is_file():
            content_metadata = ContentMetadata.from_xml(metadata_file.read_bytes())
        else:
            content_metadata = ContentMetadata.empty(druid)
        if not content_metadata.object_id:
            content_metadata.object_id = druid

        return DigitalObject(
            identifier=druid,
            path=path,
            content_metadata=content_metadata,
            locked=bool(record.get("locked", False)),
            tags=record.get("tags", []),
            relationships=[Relationship(**entry) for entry in record.get("relationships", [])],
        )

    def create(
        self,
        identifier: str,
        content_metadata: Optional[ContentMetadata] = None,
        *,
        locked: bool = False,
    ) -> DigitalObject:
        druid = normalize_druid(identifier)
        digital_object = DigitalObject(
            identifier=druid,
            path=self.object_path(druid),
            content_metadata=content_metadata or ContentMetadata.empty(druid),
            locked=locked,
        )
        digital_object.save()
        return digital_object


def _write_staged(files: List[Tuple[Path, bytes]]) -> None:
    staged = [(path.with_name(f".{path.name}.tmp"), path) for path, _ in files]
    try:
        for (staging, _), (_, payload) in zip(staged, files):
            staging.write_bytes(payload)
        for staging, path in staged:
            staging.replace(path)
    finally:
        for staging, _ in staged:
            staging.unlink(missing_ok=True)
