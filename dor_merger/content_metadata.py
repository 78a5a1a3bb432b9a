"""
Typed view over a contentMetadata XML document.

Resources are exposed as immutable `ResourceFragment` records in document
order. Fragments taken from one document can be linked into another as
virtual resources (by reference) or copied in by value.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from lxml import etree

from .errors import InvalidContentMetadataError

DEFAULT_CONTENT_TYPE = "image"
VIRTUAL_RELATIONSHIP = "alsoAvailableAs"


@dataclass(frozen=True)
class FileEntry:
    file_id: str
    mimetype: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ResourceFragment:
    resource_id: str
    resource_type: str
    sequence: Optional[int] = None
    labels: Tuple[str, ...] = ()
    files: Tuple[FileEntry, ...] = ()
    element: Optional[etree._Element] = field(default=None, compare=False, repr=False)


class ContentMetadata:
    def __init__(self, root: etree._Element) -> None:
        if root.tag != "contentMetadata":
            raise InvalidContentMetadataError(
                f"Expected a contentMetadata root element, found <{root.tag}>"
            )
        self.root = root

    @classmethod
    def from_xml(cls, data: Union[bytes, str]) -> "ContentMetadata":
        if isinstance(data, str):
            data = data.encode("utf-8")
        parser = etree.XMLParser(remove_blank_text=True)
        try:
            root = etree.fromstring(data, parser)
        except etree.XMLSyntaxError as exc:
            raise InvalidContentMetadataError(f"Unparseable contentMetadata: {exc}") from exc
        return cls(root)

    @classmethod
    def empty(cls, object_id: str, content_type: str = DEFAULT_CONTENT_TYPE) -> "ContentMetadata":
        """Well-formed shell with no resources, used when purging a parent."""
        return cls(etree.Element("contentMetadata", objectId=object_id, type=content_type))

    @property
    def object_id(self) -> str:
        return self.root.get("objectId", "")

    @object_id.setter
    def object_id(self, value: str) -> None:
        self.root.set("objectId", value)

    @property
    def content_type(self) -> str:
        return self.root.get("type", "")

    def resources(self) -> List[ResourceFragment]:
        return [_fragment_from_element(element) for element in self.root.iter("resource")]

    def next_sequence(self) -> int:
        sequences = [
            int(value)
            for value in (element.get("sequence") for element in self.root.iter("resource"))
            if value and value.isdigit()
        ]
        return max(sequences, default=0) + 1

    def references(self, object_id: str) -> bool:
        return bool(self.root.xpath(".//resource/*[@objectId=$oid]", oid=object_id))

    def add_virtual_resource(self, child_id: str, fragment: ResourceFragment) -> str:
        sequence = self.next_sequence()
        resource_id = self._resource_id(sequence)
        resource = etree.SubElement(
            self.root,
            "resource",
            id=resource_id,
            sequence=str(sequence),
            type=fragment.resource_type,
        )
        for label in fragment.labels:
            etree.SubElement(resource, "label").text = label
        for entry in fragment.files:
            attributes = {
                "fileId": entry.file_id,
                "objectId": child_id,
                "resourceId": fragment.resource_id,
            }
            if entry.mimetype:
                attributes["mimetype"] = entry.mimetype
            etree.SubElement(resource, "externalFile", attributes)
        etree.SubElement(resource, "relationship", type=VIRTUAL_RELATIONSHIP, objectId=child_id)
        return resource_id

    def add_copied_resource(self, fragment: ResourceFragment) -> str:
        sequence = self.next_sequence()
        resource_id = self._resource_id(sequence)
        if fragment.element is not None:
            resource = copy.deepcopy(fragment.element)
        else:
            resource = _element_from_fragment(fragment)
        resource.set("id", resource_id)
        resource.set("sequence", str(sequence))
        self.root.append(resource)
        return resource_id

    def to_xml(self) -> bytes:
        return etree.tostring(self.root, pretty_print=True, xml_declaration=True, encoding="UTF-8")

    def _resource_id(self, sequence: int) -> str:
        bare = self.object_id.split(":", 1)[-1] or "resource"
        return f"{bare}_{sequence}"


def _fragment_from_element(element: etree._Element) -> ResourceFragment:
    sequence = element.get("sequence")
    files = tuple(
        FileEntry(
            file_id=file_element.get("id", ""),
            mimetype=file_element.get("mimetype"),
            attributes=dict(file_element.attrib),
        )
        for file_element in element.findall("file")
    )
    return ResourceFragment(
        resource_id=element.get("id", ""),
        resource_type=element.get("type", ""),
        sequence=int(sequence) if sequence and sequence.isdigit() else None,
        labels=tuple(label.text or "" for label in element.findall("label")),
        files=files,
        element=copy.deepcopy(element),
    )


def _element_from_fragment(fragment: ResourceFragment) -> etree._Element:
    resource = etree.Element("resource", type=fragment.resource_type)
    for label in fragment.labels:
        etree.SubElement(resource, "label").text = label
    for entry in fragment.files:
        attributes = dict(entry.attributes) or {"id": entry.file_id}
        if entry.mimetype and "mimetype" not in attributes:
            attributes["mimetype"] = entry.mimetype
        etree.SubElement(resource, "file", attributes)
    return resource
