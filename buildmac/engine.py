"""
Macro engine.

Coordinates analysis, per-file substitution and patching for one build.
"""

import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .analysis import MacroMetadata, MetadataAnalyzer
from .diagnostics import Diagnostic, MacroError
from .sandbox import DEFAULT_TIMEOUT, SandboxEvaluator
from .syntax import SourceTree
from .transform import TransformResult, transform_file


class BuildState(Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    TRANSFORMING = "transforming"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BuildResult:
    """Outcome of one build: transformed files plus all diagnostics."""
    files: Dict[str, TransformResult] = field(default_factory=dict)
    errors: List[Diagnostic] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    state: BuildState = BuildState.IDLE
    metadata: Optional[MacroMetadata] = None

    @property
    def cancelled(self) -> bool:
        return self.state is BuildState.CANCELLED

    @property
    def success(self) -> bool:
        return self.state is BuildState.DONE and not self.errors

    def text(self, path: str) -> str:
        """Transformed text of one file."""
        return self.files[path].text

    def get_warnings(self) -> List[Diagnostic]:
        return self.warnings.copy()


class MacroEngine:
    """Main macro engine class."""

    def __init__(self, defines: Optional[Mapping] = None, verbose: bool = False,
                 timeout: Optional[float] = DEFAULT_TIMEOUT, max_workers: Optional[int] = None,
                 warn_as_error: bool = False, suppressed_warnings: Iterable[str] = ()):
        self.defines = MappingProxyType(dict(defines or {}))
        self.verbose = verbose
        self.timeout = timeout
        self.max_workers = max_workers
        self.warn_as_error = warn_as_error  # Promote warnings to errors in the build result
        self.suppressed_warnings = frozenset(suppressed_warnings)
        self.evaluator = SandboxEvaluator(timeout)
        self.state = BuildState.IDLE
        self.warnings: List[Diagnostic] = []  # Analysis warnings of the last build
        self._cancelled = threading.Event()

    def log(self, message: str):
        """Print log message if verbose mode is enabled."""
        if self.verbose:
            print(f"[buildmac] {message}", file=sys.stderr)

    def warn(self, warning: Diagnostic):
        """Add a build warning."""
        self.warnings.append(warning)
        if self.verbose:
            print(f"[buildmac] Warning: {warning}", file=sys.stderr)

    def get_warnings(self) -> List[Diagnostic]:
        """Get all analysis warnings generated during the last build."""
        return self.warnings.copy()

    def cancel(self):
        """
        Cancel the running build.

        Files whose transform has not finished are dropped from the result.
        """
        self.log("Cancellation requested")
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def analyze(self, trees: Iterable[SourceTree]) -> MacroMetadata:
        """Run the metadata analysis once for all files of a build."""
        analyzer = MetadataAnalyzer(self.defines, self.verbose)
        metadata = analyzer.analyze(trees)
        for warning in analyzer.get_warnings():
            self.warn(warning)
        return metadata

    def transform(self, tree: SourceTree, metadata: MacroMetadata) -> Optional[TransformResult]:
        """Transform one file. Returns None if the build was cancelled first."""
        if self.is_cancelled:
            return None
        if tree.path not in metadata.files_with_macros:
            return TransformResult(tree.text, path=tree.path)
        self.log(f"Transforming {tree.path}...")
        return transform_file(tree, None, metadata, self.defines, self.evaluator)

    def build(self, sources: Mapping[str, str]) -> BuildResult:
        """
        Run a whole build.

        Args:
            sources: Mapping of file path to source text

        Returns:
            BuildResult with the transformed text of every file

        Raises:
            SourceParseError: if any file cannot be parsed (the build is aborted)
            SubstitutionOverlapError: on an internal substitution conflict
        """
        self._cancelled.clear()
        self.warnings = []

        self.state = BuildState.ANALYZING
        self.log(f"Analyzing {len(sources)} files...")
        try:
            trees = {path: SourceTree.parse(text, path) for path, text in sources.items()}
            metadata = self.analyze(trees.values())
        except MacroError:
            self.state = BuildState.FAILED
            raise

        self.state = BuildState.TRANSFORMING
        results: Dict[str, TransformResult] = {}
        try:
            results = self._transform_all(trees, metadata)
        except AssertionError:
            self.state = BuildState.FAILED
            raise

        self.state = BuildState.CANCELLED if self.is_cancelled else BuildState.DONE
        result = BuildResult(state=self.state, metadata=metadata)
        for path in trees:
            if path in results:
                result.files[path] = results[path]
        self._collect_diagnostics(result)

        self.log(f"Build {self.state.value}: {len(result.files)} files, "
                 f"{len(result.errors)} errors, {len(result.warnings)} warnings")
        return result

    def build_paths(self, paths: Iterable) -> BuildResult:
        """Read files from disk and build them. Results are keyed by str(path)."""
        sources = {}
        for path in paths:
            self.log(f"Reading {path}...")
            sources[str(path)] = Path(path).read_text(encoding='utf-8')
        return self.build(sources)

    def _transform_all(self, trees: Dict[str, SourceTree], metadata: MacroMetadata) -> Dict[str, TransformResult]:
        results: Dict[str, TransformResult] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="buildmac") as pool:
            futures = {pool.submit(self.transform, tree, metadata): path for path, tree in trees.items()}
            for future in as_completed(futures):
                if self.is_cancelled:
                    pool.shutdown(wait=False, cancel_futures=True)
                    break
                result = future.result()
                if result is not None:
                    results[futures[future]] = result
        return results

    def _collect_diagnostics(self, result: BuildResult):
        warnings = list(self.warnings)
        for file_result in result.files.values():
            result.errors.extend(file_result.errors)
            warnings.extend(file_result.warnings)
        warnings = [w for w in warnings if w.code not in self.suppressed_warnings]
        if self.warn_as_error:
            result.errors.extend(warnings)
        else:
            result.warnings.extend(warnings)
