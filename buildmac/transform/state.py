"""Per-file transform state and results."""

from dataclasses import dataclass, field
from typing import List, Mapping

from ..analysis import MacroMetadata
from ..diagnostics import Diagnostic
from ..syntax import SourceTree


@dataclass
class TransformState:
    """
    Everything the collector needs for one file.

    source_text is never modified; diagnostics are only ever appended.
    """
    tree: SourceTree
    defines: Mapping
    metadata: MacroMetadata
    errors: List[Diagnostic] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)

    @property
    def source_text(self) -> str:
        return self.tree.text


@dataclass
class TransformResult:
    """Final text of one file plus its diagnostics."""
    text: str
    errors: List[Diagnostic] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    path: str = "<input>"
    changed: bool = False

    @property
    def success(self) -> bool:
        return not self.errors
