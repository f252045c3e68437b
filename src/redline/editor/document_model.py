"""Rich-text document tree used by the live editor.

The document is an ordered tree of typed nodes. Block nodes (paragraphs,
headings) hold inline content; inline content is text runs carrying marks
plus atom nodes (hard breaks and inline diff units). Every node kind is
described by a :class:`NodeType` registered in a module level registry.

Positions follow the usual rich-text convention: the document content starts
at ``0``, entering or leaving a block costs one position, a text run costs
one position per character and an inline atom costs exactly one position.

All mutations run inside :meth:`Document.transaction`; a transaction is one
undo step, rolls back on error and notifies listeners once on commit.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Sequence

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class DocumentRangeError(ValueError):
    """Raised when a position or range cannot be applied to the document."""


class UnknownNodeTypeError(KeyError):
    """Raised when a node kind has not been registered."""


# -----------------------------------------------------------------------------
# Node Types
# -----------------------------------------------------------------------------


class NodeKind(str, Enum):
    """Built-in node kinds."""

    DOC = "doc"
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    TEXT = "text"
    HARD_BREAK = "hard_break"
    INLINE_DIFF = "inline_diff"


@dataclass(slots=True, frozen=True)
class NodeType:
    """Schema entry for a node kind.

    Attributes:
        name: Kind discriminator stored on nodes.
        inline: Whether the node lives inside a textblock.
        atom: Whether the node is a leaf with a size of one position.
        content: ``"block"``, ``"inline"`` or ``None`` for leaves.
        attrs: Default attribute values.
    """

    name: str
    inline: bool = False
    atom: bool = False
    content: str | None = None
    attrs: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_textblock(self) -> bool:
        return self.content == "inline"


_NODE_TYPES: dict[str, NodeType] = {}


def register_node_type(node_type: NodeType) -> NodeType:
    """Register (or replace) a node type in the schema."""
    _NODE_TYPES[node_type.name] = node_type
    LOGGER.debug("Registered node type: %s", node_type.name)
    return node_type


def get_node_type(name: str) -> NodeType:
    try:
        return _NODE_TYPES[name]
    except KeyError:
        raise UnknownNodeTypeError(name) from None


def registered_node_types() -> tuple[str, ...]:
    return tuple(_NODE_TYPES)


register_node_type(NodeType(NodeKind.DOC.value, content="block"))
register_node_type(NodeType(NodeKind.PARAGRAPH.value, content="inline"))
register_node_type(NodeType(NodeKind.HEADING.value, content="inline", attrs={"level": 1}))
register_node_type(NodeType(NodeKind.TEXT.value, inline=True))
register_node_type(NodeType(NodeKind.HARD_BREAK.value, inline=True, atom=True))


# -----------------------------------------------------------------------------
# Nodes
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Mark:
    """Inline formatting applied to a text run (bold, italic, link...)."""

    type: str
    attrs: tuple[tuple[str, Any], ...] = ()

    def attr(self, name: str, default: Any = None) -> Any:
        return dict(self.attrs).get(name, default)


@dataclass(slots=True)
class Node:
    """A node in the document tree.

    Text runs store their characters in ``text``. Atom nodes may keep
    ``children`` as payload (an inline diff unit keeps its rendered
    suggestion there) but those children never occupy positions.
    """

    kind: str
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    text: str = ""
    marks: tuple[Mark, ...] = ()

    def __post_init__(self) -> None:
        node_type = get_node_type(self.kind)
        for key, value in node_type.attrs.items():
            self.attrs.setdefault(key, value)

    # Constructors ---------------------------------------------------------

    @classmethod
    def doc(cls, blocks: Sequence[Node] = ()) -> Node:
        return cls(NodeKind.DOC.value, children=list(blocks))

    @classmethod
    def paragraph(cls, content: Sequence[Node] | str = ()) -> Node:
        if isinstance(content, str):
            content = [cls.text_run(content)] if content else []
        return cls(NodeKind.PARAGRAPH.value, children=list(content))

    @classmethod
    def heading(cls, content: Sequence[Node] | str = (), level: int = 1) -> Node:
        if isinstance(content, str):
            content = [cls.text_run(content)] if content else []
        return cls(NodeKind.HEADING.value, attrs={"level": level}, children=list(content))

    @classmethod
    def text_run(cls, text: str, marks: Sequence[Mark] = ()) -> Node:
        return cls(NodeKind.TEXT.value, text=text, marks=tuple(marks))

    @classmethod
    def hard_break(cls) -> Node:
        return cls(NodeKind.HARD_BREAK.value)

    # Introspection --------------------------------------------------------

    @property
    def type(self) -> NodeType:
        return get_node_type(self.kind)

    @property
    def is_text(self) -> bool:
        return self.kind == NodeKind.TEXT.value

    @property
    def size(self) -> int:
        """Number of positions the node occupies in its parent."""
        if self.is_text:
            return len(self.text)
        node_type = self.type
        if node_type.atom or node_type.content is None:
            return 1
        return 2 + self.content_size

    @property
    def content_size(self) -> int:
        if self.type.atom:
            return 0
        return sum(child.size for child in self.children)

    def text_content(self) -> str:
        """Plain text of the node; blocks are not separated."""
        if self.is_text:
            return self.text
        if self.kind == NodeKind.HARD_BREAK.value:
            return "\n"
        return "".join(child.text_content() for child in self.children)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind}
        if self.attrs:
            data["attrs"] = {
                key: value for key, value in self.attrs.items() if not key.startswith("_")
            }
        if self.is_text:
            data["text"] = self.text
            if self.marks:
                data["marks"] = [
                    {"type": mark.type, "attrs": dict(mark.attrs)} if mark.attrs else {"type": mark.type}
                    for mark in self.marks
                ]
        elif self.children:
            data["content"] = [child.to_dict() for child in self.children]
        return data


@dataclass(slots=True, frozen=True)
class TextMatch:
    """Location of a substring inside a single text run."""

    start: int
    end: int
    text: str
    marks: tuple[Mark, ...] = ()


@dataclass(slots=True)
class _Step:
    label: str
    before: Node
    after: Node | None = None


DocumentListener = Callable[["Document", str], None]


# -----------------------------------------------------------------------------
# Document
# -----------------------------------------------------------------------------


class Document:
    """Mutable document tree with transactional edits and undo history.

    Example::

        doc = Document.from_text("The cat sat.")
        match = doc.find_text("cat")
        with doc.transaction("replace"):
            doc.delete_range(match.start, match.end)
            doc.insert_nodes(match.start, [Node.text_run("dog")])
    """

    def __init__(self, root: Node | None = None, *, history_limit: int = 100) -> None:
        root = root or Node.doc([Node.paragraph()])
        if root.kind != NodeKind.DOC.value:
            raise DocumentRangeError("Document root must be a doc node")
        self._root = root
        self._normalize_tree(self._root)
        self._version = 1
        self._history_limit = history_limit
        self._undo: list[_Step] = []
        self._redo: list[_Step] = []
        self._active: _Step | None = None
        self._depth = 0
        self._listeners: list[DocumentListener] = []

    @classmethod
    def from_text(cls, text: str) -> Document:
        """Build a document with one paragraph per line of ``text``."""
        lines = text.split("\n") if text else [""]
        return cls(Node.doc([Node.paragraph(line) for line in lines]))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def root(self) -> Node:
        return self._root

    @property
    def version(self) -> int:
        return self._version

    @property
    def content_size(self) -> int:
        return self._root.content_size

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def plain_text(self) -> str:
        """Plain text with one line per block; diff units show their suggestion."""
        return "\n".join(block.text_content() for block in self._root.children)

    def add_listener(self, listener: DocumentListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: DocumentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def descendants(self) -> Iterator[tuple[Node, int, Node]]:
        """Yield ``(node, pos, parent)`` for every positioned node in order."""
        yield from self._walk(self._root, 0)

    def _walk(self, parent: Node, start: int) -> Iterator[tuple[Node, int, Node]]:
        pos = start
        for child in parent.children:
            yield child, pos, parent
            if not child.is_text and not child.type.atom and child.type.content is not None:
                yield from self._walk(child, pos + 1)
            pos += child.size

    def textblocks(self) -> Iterator[tuple[Node, int]]:
        """Yield ``(block, content_start)`` for every textblock."""
        for node, pos, _parent in self.descendants():
            if node.type.is_textblock:
                yield node, pos + 1

    def find_text(self, needle: str, *, occurrence: int = 0) -> TextMatch | None:
        """Locate ``needle`` inside a single text run.

        Text runs are visited in document order and each run is searched
        independently. ``occurrence`` selects which hit to return; ``0`` is
        the first one.
        """
        if not needle or occurrence < 0:
            return None
        seen = 0
        for node, pos, _parent in self.descendants():
            if not node.is_text:
                continue
            index = node.text.find(needle)
            while index != -1:
                if seen == occurrence:
                    return TextMatch(
                        start=pos + index,
                        end=pos + index + len(needle),
                        text=needle,
                        marks=node.marks,
                    )
                seen += 1
                index = node.text.find(needle, index + 1)
        return None

    def find_node(self, kind: str, **attrs: Any) -> tuple[Node, int] | None:
        """Return the first node of ``kind`` whose attributes match ``attrs``."""
        for node, pos, _parent in self.descendants():
            if node.kind != kind:
                continue
            if all(node.attrs.get(key) == value for key, value in attrs.items()):
                return node, pos
        return None

    def find_nodes(self, kind: str) -> list[tuple[Node, int]]:
        return [(node, pos) for node, pos, _parent in self.descendants() if node.kind == kind]

    def text_between(self, start: int, end: int) -> str:
        block, offset = self._resolve_textblock(start, end)
        pieces: list[str] = []
        pos = offset
        for child in block.children:
            child_end = pos + child.size
            if child.is_text:
                lo = max(start, pos)
                hi = min(end, child_end)
                if lo < hi:
                    pieces.append(child.text[lo - pos : hi - pos])
            elif start <= pos and child_end <= end:
                pieces.append(child.text_content())
            pos = child_end
        return "".join(pieces)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self, label: str = "") -> Iterator[Document]:
        """Group mutations into one atomic, undoable step.

        Nested transactions join the outermost one. If the block raises, the
        tree is restored to its state before the outermost transaction and
        the exception propagates.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._active = _Step(label=label, before=copy.deepcopy(self._root))
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._root = self._active.before
            LOGGER.debug("Document transaction %r rolled back", label)
            raise
        else:
            self._commit(self._active)
        finally:
            self._depth = 0
            self._active = None

    def _commit(self, step: _Step) -> None:
        self._normalize_tree(self._root)
        self._undo.append(step)
        if len(self._undo) > self._history_limit:
            del self._undo[0]
        self._redo.clear()
        self._bump(step.label)

    def _bump(self, label: str) -> None:
        self._version += 1
        LOGGER.debug("Document committed %r (version=%d)", label, self._version)
        for listener in list(self._listeners):
            listener(self, label)

    def undo(self) -> bool:
        """Revert the most recent committed step."""
        if self.in_transaction or not self._undo:
            return False
        step = self._undo.pop()
        step.after = self._root
        self._root = step.before
        self._redo.append(step)
        self._bump(f"undo:{step.label}")
        return True

    def redo(self) -> bool:
        if self.in_transaction or not self._redo:
            return False
        step = self._redo.pop()
        assert step.after is not None
        step.before, self._root = self._root, step.after
        step.after = None
        self._undo.append(step)
        self._bump(f"redo:{step.label}")
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def delete_range(self, start: int, end: int) -> None:
        """Delete inline content between ``start`` and ``end``.

        The range must lie inside a single textblock.
        """
        if start == end:
            return
        with self.transaction("delete"):
            block, offset = self._resolve_textblock(start, end)
            kept: list[Node] = []
            pos = offset
            for child in block.children:
                child_end = pos + child.size
                if child_end <= start or pos >= end:
                    kept.append(child)
                elif child.is_text:
                    head = child.text[: max(0, start - pos)]
                    tail = child.text[max(0, end - pos) :] if end < child_end else ""
                    if head:
                        kept.append(Node.text_run(head, child.marks))
                    if tail:
                        kept.append(Node.text_run(tail, child.marks))
                pos = child_end
            block.children = kept

    def insert_nodes(self, pos: int, nodes: Sequence[Node]) -> None:
        """Insert inline ``nodes`` at ``pos`` inside a textblock."""
        for node in nodes:
            if not node.type.inline:
                raise DocumentRangeError(f"Cannot insert block node {node.kind!r} inline")
        if not nodes:
            return
        with self.transaction("insert"):
            block, offset = self._resolve_textblock(pos, pos)
            result: list[Node] = []
            cursor = offset
            inserted = False
            for child in block.children:
                child_end = cursor + child.size
                if not inserted and cursor <= pos < child_end and child.is_text and pos > cursor:
                    split = pos - cursor
                    result.append(Node.text_run(child.text[:split], child.marks))
                    result.extend(nodes)
                    result.append(Node.text_run(child.text[split:], child.marks))
                    inserted = True
                elif not inserted and pos == cursor:
                    result.extend(nodes)
                    result.append(child)
                    inserted = True
                else:
                    result.append(child)
                cursor = child_end
            if not inserted:
                result.extend(nodes)
            block.children = result

    def insert_text(self, pos: int, text: str, marks: Sequence[Mark] = ()) -> None:
        """Insert plain text; newlines become hard breaks."""
        nodes: list[Node] = []
        for index, line in enumerate(text.split("\n")):
            if index:
                nodes.append(Node.hard_break())
            if line:
                nodes.append(Node.text_run(line, marks))
        self.insert_nodes(pos, nodes)

    def replace_range(self, start: int, end: int, nodes: Sequence[Node]) -> None:
        """Delete ``start..end`` and insert ``nodes`` as one step."""
        with self.transaction("replace"):
            self.delete_range(start, end)
            self.insert_nodes(start, nodes)

    def append_block(self, block: Node) -> None:
        if block.type.inline:
            raise DocumentRangeError(f"Cannot append inline node {block.kind!r} as a block")
        with self.transaction("append"):
            self._root.children.append(block)

    def set_content(self, root: Node) -> None:
        """Replace the whole tree (file load) as one undoable step."""
        if root.kind != NodeKind.DOC.value:
            raise DocumentRangeError("Document root must be a doc node")
        with self.transaction("set_content"):
            self._root = root

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_textblock(self, start: int, end: int) -> tuple[Node, int]:
        if start < 0 or end < start or end > self.content_size:
            raise DocumentRangeError(f"Invalid range {start}..{end}")
        for block, offset in self.textblocks():
            if offset <= start and end <= offset + block.content_size:
                return block, offset
        raise DocumentRangeError(f"Range {start}..{end} does not lie within a single textblock")

    @classmethod
    def _normalize_tree(cls, node: Node) -> None:
        if node.is_text or node.type.atom:
            return
        if node.type.is_textblock:
            node.children = merge_text_runs(node.children)
            return
        for child in node.children:
            cls._normalize_tree(child)


def merge_text_runs(children: Sequence[Node]) -> list[Node]:
    """Drop empty text runs and join neighbours that share the same marks."""
    merged: list[Node] = []
    for child in children:
        if child.is_text and not child.text:
            continue
        if child.is_text and merged and merged[-1].is_text and merged[-1].marks == child.marks:
            merged[-1] = Node.text_run(merged[-1].text + child.text, child.marks)
        else:
            merged.append(child)
    return merged


__all__ = [
    "Document",
    "DocumentListener",
    "DocumentRangeError",
    "Mark",
    "Node",
    "NodeKind",
    "NodeType",
    "TextMatch",
    "UnknownNodeTypeError",
    "get_node_type",
    "merge_text_runs",
    "register_node_type",
    "registered_node_types",
]
