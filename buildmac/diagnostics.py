"""
Diagnostics and error types for the macro engine.

Warnings and file-scoped errors are collected as Diagnostic records with a
code (MACxxxx) and an optional source location. Exceptions are reserved for
conditions that abort a build or that cross the sandbox boundary.
"""

from dataclasses import dataclass, field
from typing import List, Optional


# Analysis warnings
MALFORMED_CONDITION = "MAC0101"
MISSING_PREFIX = "MAC0102"

# Collection diagnostics
INVALID_MACRO_CALL = "MAC0201"
INLINE_FUNCTION_NOT_FOUND = "MAC0202"

# Evaluation failures
EVALUATION_FAILED = "MAC0301"
EVALUATION_TIMEOUT = "MAC0302"
RESULT_NOT_RENDERABLE = "MAC0303"

# Collector overlap defense
OVERLAPPING_SUBSTITUTION = "MAC0401"


@dataclass(frozen=True)
class Location:
    """A 1-based position in a source file."""
    file: str
    line: int
    column: int
    line_text: str = ""
    length: int = 0

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Note:
    """Additional context attached to a diagnostic."""
    text: str
    location: Optional[Location] = None


@dataclass
class Diagnostic:
    """A warning or error reported to the host pipeline."""
    code: str
    text: str
    location: Optional[Location] = None
    notes: List[Note] = field(default_factory=list)

    def __str__(self):
        if self.location is None:
            return f"{self.code}: {self.text}"
        return f"{self.location}: {self.code}: {self.text}"

    def format(self) -> str:
        """
        Render the diagnostic with a highlighted source excerpt.

        The excerpt is the offending line followed by a caret marker under the
        reported column, the way compilers print ordinary syntax errors.
        """
        lines = [str(self)]
        location = self.location
        if location is not None and location.line_text:
            gutter = f"{location.line:>5} | "
            lines.append(gutter + location.line_text.rstrip("\n"))
            marker = "^" + "~" * max(location.length - 1, 0)
            lines.append(" " * (len(gutter) + location.column - 1) + marker)
        for note in self.notes:
            if note.location is not None:
                lines.append(f"  note: {note.location}: {note.text}")
            else:
                lines.append(f"  note: {note.text}")
        return "\n".join(lines)


class MacroError(Exception):
    """Base class for all macro engine errors."""
    pass


class SourceParseError(MacroError):
    """A source file could not be parsed. Fatal for the build."""

    def __init__(self, message: str, location: Optional[Location] = None):
        super().__init__(f"{location}: {message}" if location else message)
        self.message = message
        self.location = location


class MacroUsageError(MacroError):
    """A macro call has the wrong shape (argument count, keywords, starred args)."""

    def __init__(self, macro: str, message: str, start: int, end: int):
        super().__init__(f"Invalid macro call: {macro} {message}")
        self.macro = macro
        self.start = start
        self.end = end


class MacroEvaluationError(MacroError):
    """
    Failure while evaluating an inline payload, mapped to its original position.

    The wrapped exception stays available as `original` (and as __cause__).
    Members of an ExceptionGroup are wrapped individually into `errors`.
    """

    code = EVALUATION_FAILED

    def __init__(self, original: BaseException, location: Optional[Location] = None,
                 trace: Optional[List[str]] = None):
        message = str(original) or type(original).__name__
        super().__init__(message)
        self.original = original
        self.location = location
        self.trace: List[str] = trace or []
        self.errors: List['MacroEvaluationError'] = []

    @property
    def kind(self) -> str:
        return type(self.original).__name__

    def to_diagnostic(self) -> Diagnostic:
        """Convert into a diagnostic record for the host."""
        notes = [Note(line) for line in self.trace]
        for error in self.errors:
            notes.append(Note(f"{error.kind}: {error}", error.location))
        return Diagnostic(self.code, f"{self.kind}: {self}", self.location, notes)


class MacroTimeoutError(MacroEvaluationError):
    """An inline payload did not finish within the configured timeout."""

    code = EVALUATION_TIMEOUT


class MacroRenderError(MacroEvaluationError):
    """An inline payload produced a value with no Python literal form."""

    code = RESULT_NOT_RENDERABLE


class SubstitutionOverlapError(MacroError, AssertionError):
    """
    Two substitutions overlap at patch time.

    This is an internal invariant violation (a classifier or collector bug),
    never a user error, so it is an AssertionError and aborts the build.
    """
    pass
