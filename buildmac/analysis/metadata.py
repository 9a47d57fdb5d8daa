"""
Build-wide macro metadata.

One pass over every parsed file decides which files contain macros and which
guard bindings are disabled for the current set of defines.
"""

import ast
import sys
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Mapping, Set, Union

from ..diagnostics import (
    Diagnostic, MacroUsageError,
    MALFORMED_CONDITION, MISSING_PREFIX,
)
from ..syntax import SourceTree
from .classifier import (
    Guard, GuardedBinding, MACRO_PREFIX,
    classify, is_condition_met, is_macro_call,
)


@dataclass(frozen=True)
class MacroMetadata:
    """Result of analyzing all files of one build."""
    files_with_macros: FrozenSet[str] = field(default_factory=frozenset)
    disabled_macro_names: FrozenSet[str] = field(default_factory=frozenset)


class MetadataAnalyzer:
    """Scans parsed files for macro calls and resolves disabled guard bindings."""

    def __init__(self, defines: Mapping = None, verbose: bool = False):
        self.defines = defines if defines is not None else {}
        self.verbose = verbose
        self.warnings: List[Diagnostic] = []

    def log(self, message: str):
        """Print log message if verbose mode is enabled."""
        if self.verbose:
            print(f"[buildmac] {message}", file=sys.stderr)

    def warn(self, code: str, message: str, tree: SourceTree = None, node: ast.AST = None):
        """Add an analysis warning with a code."""
        location = None
        if tree is not None and node is not None:
            location = tree.location(*tree.span(node))
        warning = Diagnostic(code, message, location)
        self.warnings.append(warning)
        if self.verbose:
            print(f"[buildmac] Warning: {warning}", file=sys.stderr)

    def get_warnings(self) -> List[Diagnostic]:
        """Get all warnings generated during analysis."""
        return self.warnings.copy()

    def analyze(self, files: Union[Iterable[SourceTree], Mapping[str, SourceTree]]) -> MacroMetadata:
        """
        Analyze all files of a build.

        Args:
            files: Parsed source trees, or a mapping of path to tree

        Returns:
            MacroMetadata with the files that contain macros and the names of
            guard bindings that must be stripped
        """
        self.warnings = []
        trees = list(files.values()) if isinstance(files, Mapping) else list(files)
        files_with_macros: Set[str] = set()
        disabled: Set[str] = set()

        for tree in trees:
            if self._scan(tree, disabled):
                files_with_macros.add(tree.path)

        # Modules that only reference a disabled binding still need rewriting
        if disabled:
            for tree in trees:
                if tree.path not in files_with_macros and self._references(tree, disabled):
                    self.log(f"  {tree.path} references disabled macros")
                    files_with_macros.add(tree.path)

        self.log(f"  {len(files_with_macros)} of {len(trees)} files contain macros")
        self.log(f"  {len(disabled)} disabled macro bindings")
        return MacroMetadata(frozenset(files_with_macros), frozenset(disabled))

    def _scan(self, tree: SourceTree, disabled: Set[str]) -> bool:
        """Record disabled bindings of one file. Returns True if it has any macro."""
        found = False
        for node in tree.walk():
            if not (isinstance(node, ast.stmt) or is_macro_call(node)):
                continue
            try:
                result = classify(node, tree)
            except MacroUsageError:
                # Reported by the collector; the file still has macros
                found = True
                continue
            if result is None:
                continue
            found = True

            if isinstance(result, GuardedBinding):
                if result.condition is None:
                    self.warn(MALFORMED_CONDITION,
                              f"Macro '{result.name}' needs a string literal condition; it is always kept",
                              tree, result.call.node)
                elif not is_condition_met(result.condition, result.negated, self.defines):
                    disabled.add(result.name)
                if not result.name.startswith(MACRO_PREFIX):
                    self.warn(MISSING_PREFIX,
                              f"Macro function '{result.name}' does not start with '{MACRO_PREFIX}' "
                              f"prefix to avoid conflicts",
                              tree, result.span.node)
            elif isinstance(result, Guard) and result.name is None:
                self.warn(MALFORMED_CONDITION,
                          "Guard needs a string literal condition; it is always kept",
                          tree, result.call.node)
        return found

    def _references(self, tree: SourceTree, names: Set[str]) -> bool:
        for node in tree.walk():
            if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load) and node.id in names:
                return True
        return False


def analyze_macro_metadata(files, defines: Mapping = None, verbose: bool = False) -> MacroMetadata:
    """Analyze all files of a build. See MetadataAnalyzer.analyze."""
    return MetadataAnalyzer(defines, verbose).analyze(files)
