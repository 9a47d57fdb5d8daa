"""
Test fixtures and helpers for macro transformation tests.

The key abstraction is a fluent assertion helper that builds a one-file (or
multi-file) build, runs analysis and transformation, and checks the result:

    AssertMacro("macro_x = ifdef('F', lambda: 1)\\n") \\
        .transforms_to("macro_x = None\\n")
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from buildmac.analysis import MetadataAnalyzer
from buildmac.diagnostics import Diagnostic
from buildmac.sandbox import SandboxEvaluator
from buildmac.syntax import SourceTree
from buildmac.transform import TransformResult, transform_file


class MacroAssertion:
    """
    Fluent assertion helper for testing the transformation of one file.

    Usage:
        AssertMacro("x = inline(lambda: 2 + 2)\\n").transforms_to("x = 4\\n")
        AssertMacro(src).with_define("DEBUG").has_errors("MAC0301")
    """

    def __init__(self, source: str, path: str = "main.py"):
        self.source = source
        self.path = path
        self.defines: Dict[str, object] = {}
        self.other_files: Dict[str, str] = {}
        self.expected_warnings: Optional[List[str]] = None
        self.expect_no_warnings: bool = False
        self.timeout = 5.0

    def with_define(self, name: str, value: object = True) -> 'MacroAssertion':
        self.defines[name] = value
        return self

    def with_file(self, path: str, source: str) -> 'MacroAssertion':
        """Add another file to the same build."""
        self.other_files[path] = source
        return self

    def with_warnings(self, *codes: str) -> 'MacroAssertion':
        self.expected_warnings = list(codes)
        return self

    def without_warnings(self) -> 'MacroAssertion':
        self.expect_no_warnings = True
        return self

    def with_timeout(self, timeout: float) -> 'MacroAssertion':
        self.timeout = timeout
        return self

    def run(self) -> TransformResult:
        """Analyze the whole build and transform the main file."""
        tree = SourceTree.parse(self.source, self.path)
        trees = [tree] + [SourceTree.parse(text, path) for path, text in self.other_files.items()]
        analyzer = MetadataAnalyzer(self.defines)
        metadata = analyzer.analyze(trees)
        result = transform_file(tree, self.source, metadata, self.defines, SandboxEvaluator(self.timeout))
        result.warnings = analyzer.get_warnings() + result.warnings
        self._check_warnings(result.warnings)
        return result

    def transforms_to(self, expected: str) -> TransformResult:
        """Assert the transformed text, with no errors."""
        result = self.run()
        assert not result.errors, f"Expected no errors, got: {[str(e) for e in result.errors]}"
        assert result.text == expected, f"Expected:\n{expected}\nGot:\n{result.text}"
        return result

    def is_unchanged(self) -> TransformResult:
        """Assert the text is returned as-is with no diagnostics."""
        result = self.run()
        assert result.text == self.source
        assert not result.errors, f"Expected no errors, got: {[str(e) for e in result.errors]}"
        assert not result.warnings, f"Expected no warnings, got: {[str(w) for w in result.warnings]}"
        return result

    def has_errors(self, *codes: str) -> TransformResult:
        """Assert exactly the given error codes, in order."""
        result = self.run()
        actual = [e.code for e in result.errors]
        assert actual == list(codes), f"Expected errors {list(codes)}, got {actual}"
        return result

    def _check_warnings(self, warnings: List[Diagnostic]) -> None:
        """Check warning expectations."""
        codes = [w.code for w in warnings]
        if self.expect_no_warnings:
            assert not warnings, f"Expected no warnings, got: {[str(w) for w in warnings]}"
        elif self.expected_warnings is not None:
            for code in self.expected_warnings:
                assert code in codes, f"Expected warning {code}, got {codes}"


def AssertMacro(source: str, path: str = "main.py") -> MacroAssertion:
    """Create a macro transformation assertion."""
    return MacroAssertion(source, path)


def parse(source: str, path: str = "main.py") -> SourceTree:
    return SourceTree.parse(source, path)
