"""Source ranges for package.json text.

Parses manifest text into a tree of nodes carrying the offset and length of
every token, then extracts the spans diagnostics are anchored at.

The parser is tolerant: it accepts // and /* */ comments and trailing
commas, and on malformed input it stops and returns the partial tree built
so far. Offsets are character offsets into the text.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")

_NUMBER_PATTERN = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class Span:
    """A token location: character offset and length."""

    offset: int
    length: int


@dataclass
class Node:
    """A node of the parsed tree.

    Attributes:
        type: One of object, array, property, string, number, boolean, null.
        offset: Offset of the node's first character.
        length: Number of characters the node spans.
        value: Decoded scalar value (strings, numbers, booleans).
        children: Object properties, array items, or a property's key and
            value. None for scalars.
    """

    type: str
    offset: int
    length: int = 0
    value: object = None
    children: list[Node] | None = None

    @property
    def span(self) -> Span:
        return Span(self.offset, self.length)


class _TreeParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.failed = False

    def _skip_trivia(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch in " \t\r\n\ufeff":
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end < 0 else end + 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                self.pos = len(text) if end < 0 else end + 2
            else:
                break

    def _peek(self) -> str:
        self._skip_trivia()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _finish(self, node: Node) -> Node:
        node.length = self.pos - node.offset
        return node

    def parse_string(self) -> Node:
        start = self.pos
        self.pos += 1
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\\":
                self.pos += 2
                continue
            if ch == '"':
                self.pos += 1
                raw = text[start : self.pos]
                try:
                    value = json.loads(raw)
                except json.JSONDecodeError:
                    value = raw[1:-1]
                return Node("string", start, self.pos - start, value)
            if ch == "\n":
                break
            self.pos += 1

        self.failed = True
        return Node("string", start, self.pos - start, text[start + 1 : self.pos])

    def parse_value(self) -> Node | None:
        ch = self._peek()
        if ch == "{":
            return self.parse_object()
        if ch == "[":
            return self.parse_array()
        if ch == '"':
            return self.parse_string()

        start = self.pos
        for literal, value in _LITERALS.items():
            if self.text.startswith(literal, start):
                self.pos += len(literal)
                kind = "null" if value is None else "boolean"
                return Node(kind, start, len(literal), value)

        match = _NUMBER_PATTERN.match(self.text, start)
        if match:
            self.pos = match.end()
            raw = match.group(0)
            number = float(raw) if any(c in raw for c in ".eE") else int(raw)
            return Node("number", start, len(raw), number)

        self.failed = True
        return None

    def parse_object(self) -> Node:
        node = Node("object", self.pos, children=[])
        self.pos += 1
        while not self.failed:
            ch = self._peek()
            if ch == "}":
                self.pos += 1
                return self._finish(node)
            if ch != '"':
                break

            key = self.parse_string()
            prop = Node("property", key.offset, children=[key])
            node.children.append(prop)
            if self.failed:
                self._finish(prop)
                break
            if self._peek() != ":":
                self.failed = True
                self._finish(prop)
                break
            self.pos += 1

            value = self.parse_value()
            if value is not None:
                prop.children.append(value)
            self._finish(prop)
            if self.failed:
                break

            ch = self._peek()
            if ch == ",":
                self.pos += 1
            elif ch != "}":
                break

        self.failed = True
        return self._finish(node)

    def parse_array(self) -> Node:
        node = Node("array", self.pos, children=[])
        self.pos += 1
        while not self.failed:
            ch = self._peek()
            if ch == "]":
                self.pos += 1
                return self._finish(node)
            if ch == "":
                break

            item = self.parse_value()
            if item is not None:
                node.children.append(item)
            if self.failed:
                break

            ch = self._peek()
            if ch == ",":
                self.pos += 1
            elif ch != "]":
                break

        self.failed = True
        return self._finish(node)


def parse_tree(text: str) -> Node | None:
    """Parse JSON text into a node tree.

    Returns:
        The root node (possibly partial), or None when the text does not
        start with a value at all.
    """
    return _TreeParser(text).parse_value()


@dataclass(frozen=True)
class DependencyRange:
    """Spans of one dependency entry.

    Attributes:
        name: Span of the quoted dependency name.
        version: Span of the version value (the name span when the value is
            missing from a partial tree).
    """

    name: Span
    version: Span


@dataclass
class SourceRangeMap:
    """Token spans extracted from a manifest.

    Attributes:
        properties: Top-level property name to the span of its name token.
        dependencies: Dependency name to its spans, for entries under
            ``dependencies`` and ``devDependencies`` (last one wins).
    """

    properties: dict[str, Span] = field(default_factory=dict)
    dependencies: dict[str, DependencyRange] = field(default_factory=dict)


def _property_key(prop: Node) -> Node | None:
    if prop.type != "property" or not prop.children:
        return None
    key = prop.children[0]
    return key if isinstance(key.value, str) else None


def extract_ranges(text: str) -> SourceRangeMap:
    """Extract the spans used to anchor dependency diagnostics.

    Never raises on malformed input; missing parts of the tree are skipped.
    """
    ranges = SourceRangeMap()
    root = parse_tree(text)
    if root is None or root.type != "object" or not root.children:
        return ranges

    for prop in root.children:
        key = _property_key(prop)
        if key is None:
            continue
        ranges.properties[key.value] = key.span

        if key.value not in DEPENDENCY_SECTIONS or len(prop.children) < 2:
            continue
        section = prop.children[1]
        if section.type != "object" or not section.children:
            continue

        for entry in section.children:
            dep_key = _property_key(entry)
            if dep_key is None:
                continue
            value_span = entry.children[1].span if len(entry.children) > 1 else dep_key.span
            ranges.dependencies[dep_key.value] = DependencyRange(
                name=dep_key.span, version=value_span
            )

    return ranges
