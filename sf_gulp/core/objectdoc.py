"""
Manipulation of retrieved object definitions: moving fields owned by other
namespaces into standalone field documents and filling in object attributes
missing from the retrieved definition.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from xml.parsers import expat
from xml.sax.saxutils import escape

from .entity_name import FIELD_TYPES, EntityName
from .utils import METADATA_NS

__all__ = [
    "ObjectDocument",
    "ObjectAttributes",
    "AlienField",
    "map_sharing_model",
    "render_field",
]

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

SHARING_MODELS: dict[str, str] = {
    "None": "Private",
    "Edit": "ReadWrite",
}
"""
Mapping of internal sharing model values to their metadata equivalent.
Other values are the same in both.
"""


@dataclass(kw_only=True)
class ObjectAttributes:
    """
    Object attributes queried separately from the retrieved definition.
    """

    sharing_model: str | None = None
    external_sharing_model: str | None = None
    custom_settings_type: str | None = None


@dataclass(kw_only=True)
class AlienField:
    """
    Field removed from an object definition since it's owned by a different
    namespace than the object.
    """

    namespace: str | None
    """
    Owning namespace, `None` if unmanaged.
    """

    full_name: str
    """
    Name as given in the object definition.
    """

    contents: str
    """
    Standalone field document.
    """


@dataclass(frozen=True)
class _Span:
    """
    Byte offsets of a child element of the root in the original document.
    """

    start: int
    """
    Start of opening tag.
    """

    open_end: int
    """
    End of opening tag.
    """

    close: int
    """
    Start of closing tag.
    """

    end: int
    """
    End of closing tag.
    """


class ObjectDocument:
    """
    Parsed object definition.

    The parsed tree is only inspected; edits are applied to the original
    text so that untouched content, including whitespace and character
    references, is kept byte for byte.
    """

    name: EntityName
    """
    Name of object.
    """

    _data: bytes
    _root: ET.Element
    _children: list[ET.Element]
    _spans: list[_Span]
    _root_open_end: int

    _removed: set[int]
    """
    Indexes of removed children.
    """

    _edits: list[tuple[int, int, bytes]]
    """
    Byte ranges of original document to replace, with their replacement.
    """

    def __init__(self, name: EntityName, contents: str):
        """
        :param name: Name of object
        :param contents: Object definition as retrieved
        :raises ValueError: If contents are not an object definition
        """
        self.name = name
        self._data = contents.encode(encoding="utf-8")
        self._removed = set()
        self._edits = []

        try:
            self._root = ET.fromstring(self._data)
        except ET.ParseError as e:
            raise ValueError(f"Failed to parse definition of {name}: {e}")

        if self._root.tag != _qualify("CustomObject"):
            raise ValueError(
                f"Unexpected root element in definition of {name}: {self._root.tag}"
            )

        self._children = list(self._root)
        self._root_open_end, self._spans = _scan(self._data)
        assert len(self._spans) == len(self._children)

    @property
    def modified(self) -> bool:
        return len(self._edits) > 0

    def split_fields(self, org_namespace: str | None) -> list[AlienField]:
        """
        Remove fields owned by another namespace than the object's and return
        them as standalone documents. Fields reported without a namespace are
        attributed to the org namespace.
        """
        owner = self.name.namespace or org_namespace
        aliens: list[AlienField] = []

        for index, element in enumerate(self._children):
            if element.tag != _qualify("fields") or index in self._removed:
                continue

            full_name = element.findtext(_qualify("fullName"))
            if full_name is None:
                raise ValueError(f"Field without fullName in {self.name}")

            field_name = EntityName.parse(full_name.strip(), FIELD_TYPES)
            if field_name is None:
                # standard field
                continue

            namespace = field_name.with_default_namespace(
                org_namespace
            ).namespace

            if namespace != owner:
                self._remove(index)
                aliens.append(
                    AlienField(
                        namespace=namespace,
                        full_name=full_name.strip(),
                        contents=render_field(self._inner(index)),
                    )
                )

        return aliens

    def add_attributes(self, attributes: ObjectAttributes):
        """
        Append attributes which are not already present.
        """
        for tag, value in [
            ("sharingModel", attributes.sharing_model),
            ("externalSharingModel", attributes.external_sharing_model),
            ("customSettingsType", attributes.custom_settings_type),
        ]:
            if value is not None and self._root.find(_qualify(tag)) is None:
                self._append(tag, value)

    def render(self) -> str:
        """
        Get definition with edits applied.
        """
        rendered = bytearray()
        pos = 0

        # insertions sort before a removal starting at the same offset
        for begin, end, text in sorted(self._edits, key=lambda e: e[:2]):
            rendered += self._data[pos:begin]
            rendered += text
            pos = max(pos, end)

        rendered += self._data[pos:]
        return rendered.decode(encoding="utf-8")

    def _inner(self, index: int) -> str:
        """
        Get original content between opening and closing tags of child.
        """
        span = self._spans[index]
        return self._data[span.open_end : span.close].decode(encoding="utf-8")

    def _remove(self, index: int):
        """
        Remove child along with the whitespace preceding it, keeping the
        whitespace following it.
        """
        begin = (
            self._spans[index - 1].end if index > 0 else self._root_open_end
        )
        self._edits.append((begin, self._spans[index].end, b""))
        self._removed.add(index)

    def _append(self, tag: str, text: str):
        """
        Insert child after the last remaining child, with the same indent as
        the first child.
        """
        remaining = [
            i for i in range(len(self._spans)) if i not in self._removed
        ]
        anchor = (
            self._spans[remaining[-1]].end
            if len(remaining)
            else self._root_open_end
        )

        indent = self._root.text if _is_space(self._root.text) else "\n    "
        element = f"{indent}<{tag}>{escape(text)}</{tag}>"

        self._edits.append((anchor, anchor, element.encode(encoding="utf-8")))


def map_sharing_model(value: str | None) -> str | None:
    """
    Map internal sharing model to its metadata equivalent.
    """
    if value is None:
        return None
    return SHARING_MODELS.get(value, value)


def render_field(inner: str) -> str:
    """
    Wrap original content of a `fields` element as a standalone field
    document.
    """
    return (
        XML_DECLARATION
        + f'<CustomField xmlns="{METADATA_NS}">'
        + inner
        + "</CustomField>\n"
    )


def _scan(data: bytes) -> tuple[int, list[_Span]]:
    """
    Get end of the root's opening tag and spans of the root's children.
    """
    parser = expat.ParserCreate()
    depth = 0
    root_open_end = 0
    starts: list[int] = []
    spans: list[_Span] = []

    def tag_end(pos: int) -> int:
        return data.index(b">", pos) + 1

    def start_element(name: str, attrs: dict[str, str]):
        nonlocal depth, root_open_end
        pos = parser.CurrentByteIndex

        if depth == 0:
            root_open_end = tag_end(pos)
        elif depth == 1:
            starts.append(pos)

        depth += 1

    def end_element(name: str):
        nonlocal depth
        depth -= 1

        if depth == 1:
            pos = parser.CurrentByteIndex
            start = starts.pop()
            spans.append(_Span(start, tag_end(start), pos, tag_end(pos)))

    parser.StartElementHandler = start_element
    parser.EndElementHandler = end_element
    parser.Parse(data, True)

    return root_open_end, spans


def _qualify(tag: str) -> str:
    return f"{{{METADATA_NS}}}{tag}"


def _is_space(text: str | None) -> bool:
    return text is not None and text.isspace()
