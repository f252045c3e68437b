"""Editor package: the rich-text document model, markup codec and tracked edits."""

from . import document_model, markup
from .diff_engine import INLINE_DIFF_TYPE, BulkResolution, DiffApplicationEngine, ProposalResult
from .document_model import Document, DocumentRangeError, Mark, Node, NodeKind
from .workspace import Comment, EditorWorkspace, UnresolvedChangesError

__all__ = [
    "INLINE_DIFF_TYPE",
    "BulkResolution",
    "Comment",
    "DiffApplicationEngine",
    "Document",
    "DocumentRangeError",
    "EditorWorkspace",
    "Mark",
    "Node",
    "NodeKind",
    "ProposalResult",
    "UnresolvedChangesError",
    "document_model",
    "markup",
]
