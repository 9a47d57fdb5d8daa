"""Applying collected substitutions to source text."""

from dataclasses import dataclass
from typing import Iterable, List

from ..diagnostics import SubstitutionOverlapError


@dataclass(frozen=True)
class Substitution:
    """Replace text[start:end] of the original text with replacement."""
    start: int
    end: int
    replacement: str

    @property
    def delta(self) -> int:
        """Change in text length caused by this substitution."""
        return len(self.replacement) - (self.end - self.start)


def apply_substitutions(text: str, substitutions: Iterable[Substitution]) -> str:
    """
    Apply substitutions to text.

    Substitutions are applied from the highest start offset down, so every
    offset still refers to the original text when it is used. The result is
    assembled from slices of the original; the input string is never modified.

    Raises:
        SubstitutionOverlapError: if two substitutions overlap or a span lies
            outside the text
    """
    ordered = sorted(substitutions, key=lambda s: (s.start, s.end), reverse=True)
    if not ordered:
        return text

    pieces: List[str] = []
    cursor = len(text)
    for sub in ordered:
        if not 0 <= sub.start <= sub.end <= len(text):
            raise SubstitutionOverlapError(
                f"Substitution [{sub.start}, {sub.end}) lies outside text of length {len(text)}")
        if sub.end > cursor:
            raise SubstitutionOverlapError(
                f"Substitution [{sub.start}, {sub.end}) overlaps a later substitution starting at {cursor}")
        pieces.append(text[sub.end:cursor])
        pieces.append(sub.replacement)
        cursor = sub.start
    pieces.append(text[:cursor])
    pieces.reverse()
    return ''.join(pieces)
