"""
Source trees - one file's text together with its parsed syntax tree.

Handles:
- Parsing text with the stdlib ast module
- Converting ast line/column pairs (UTF-8 byte columns) into character offsets
- Parent links for upward lookups
- Node spans, including the leading '@' of decorated definitions
"""

import ast
import io
from bisect import bisect_right
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from ..diagnostics import Location, SourceParseError


@dataclass(frozen=True)
class SyntaxNode:
    """
    Opaque view of a syntax-tree node: a half-open span plus its text.

    Substitutions only ever depend on start/end/get_text(), so tests can
    build these directly without parsing anything.
    """
    start: int
    end: int
    text: str = ""
    node: Optional[ast.AST] = None

    def get_text(self) -> str:
        return self.text


class SourceTree:
    """Parsed view of one source file."""

    def __init__(self, text: str, path: str = "<input>", module: Optional[ast.Module] = None):
        self.text = text
        self.path = path
        self.module = module if module is not None else ast.parse(text, filename=path)
        self.lines = io.StringIO(text, newline="").readlines()
        self.line_starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.line_starts.append(offset)
            offset += len(line)
        if not self.lines or self.lines[-1].endswith(("\n", "\r")):
            # Position just past a trailing newline still belongs to a line
            self.line_starts.append(offset)
        self._encoded: Dict[int, bytes] = {}
        self._parents: Optional[Dict[int, ast.AST]] = None

    def __repr__(self):
        return f"SourceTree({self.path!r}, {len(self.text)} chars)"

    @classmethod
    def parse(cls, text: str, path: str = "<input>") -> 'SourceTree':
        """
        Parse source text into a tree.

        Raises:
            SourceParseError: if the text is not valid Python
        """
        try:
            module = ast.parse(text, filename=path)
        except SyntaxError as e:
            line = e.lineno or 1
            column = e.offset or 1
            line_text = e.text or ""
            location = Location(path, line, column, line_text, 1)
            raise SourceParseError(e.msg, location) from e
        return cls(text, path, module)

    @classmethod
    def read(cls, path) -> 'SourceTree':
        """Read and parse a file from disk."""
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
        return cls.parse(text, str(path))

    @property
    def directory(self) -> Path:
        if self.path.startswith("<"):
            return Path.cwd()
        return Path(self.path).resolve().parent

    # Positions

    def offset(self, lineno: int, col_offset: int) -> int:
        """Convert an ast (1-based line, UTF-8 byte column) pair to a character offset."""
        index = lineno - 1
        if index >= len(self.lines):
            return len(self.text)
        line = self.lines[index]
        if line.isascii():
            return self.line_starts[index] + col_offset
        encoded = self._encoded.get(index)
        if encoded is None:
            encoded = line.encode('utf-8')
            self._encoded[index] = encoded
        return self.line_starts[index] + len(encoded[:col_offset].decode('utf-8', errors='replace'))

    def position(self, offset: int) -> Tuple[int, int]:
        """Convert a character offset to a 1-based (line, column) pair."""
        index = max(bisect_right(self.line_starts, offset) - 1, 0)
        return index + 1, offset - self.line_starts[index] + 1

    def line_text(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""

    def location(self, start: int, end: Optional[int] = None) -> Location:
        """Build a diagnostic location for a span."""
        line, column = self.position(start)
        line_text = self.line_text(line)
        length = 1
        if end is not None:
            length = max(min(end, self.line_starts[line - 1] + len(line_text.rstrip("\r\n"))) - start, 1)
        return Location(self.path, line, column, line_text, length)

    # Spans

    def span(self, node: ast.AST) -> Tuple[int, int]:
        """Character span of a node, starting at the '@' of its first decorator."""
        start = self.offset(node.lineno, node.col_offset)
        end = self.offset(node.end_lineno, node.end_col_offset)
        decorators = getattr(node, 'decorator_list', None)
        if decorators:
            start = min(start, self.decorator_start(decorators[0]))
        return start, end

    def decorator_start(self, decorator: ast.expr) -> int:
        """Offset of the '@' that introduces a decorator expression."""
        pos = self.offset(decorator.lineno, decorator.col_offset) - 1
        while pos >= 0 and self.text[pos] != '@':
            pos -= 1
        return max(pos, 0)

    def node(self, node: ast.AST) -> SyntaxNode:
        start, end = self.span(node)
        return SyntaxNode(start, end, self.text[start:end], node)

    # Tree structure

    def parent(self, node: ast.AST) -> Optional[ast.AST]:
        if self._parents is None:
            parents: Dict[int, ast.AST] = {}
            for parent in ast.walk(self.module):
                for child in ast.iter_child_nodes(parent):
                    parents[id(child)] = parent
            self._parents = parents
        return self._parents.get(id(node))

    def walk(self) -> Iterator[ast.AST]:
        return ast.walk(self.module)

    def top_level_imports(self) -> List[ast.stmt]:
        return [stmt for stmt in self.module.body if isinstance(stmt, (ast.Import, ast.ImportFrom))]

    def find_function(self, name: str) -> Optional[ast.AST]:
        """
        Find a function named `name` anywhere in the file.

        Matches `def name(...)`, `async def name(...)` and `name = lambda ...`.
        Returns the def statement or the lambda node.
        """
        for node in self.walk():
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == name:
                return node
            if isinstance(node, (ast.Assign, ast.AnnAssign)) and isinstance(node.value, ast.Lambda):
                targets = node.targets if isinstance(node, ast.Assign) else [node.target]
                if any(isinstance(t, ast.Name) and t.id == name for t in targets):
                    return node.value
        return None
