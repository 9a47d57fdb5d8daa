"""Tests for diagnostics and define parsing."""

import pytest

from buildmac.config import parse_defines
from buildmac.diagnostics import (
    Diagnostic, Location, MacroEvaluationError, MacroTimeoutError, Note,
    EVALUATION_FAILED, EVALUATION_TIMEOUT,
)


class TestDiagnostic:
    """Tests for diagnostic formatting."""

    def test_str_with_location(self):
        """Test the compiler-style one-line form."""
        diagnostic = Diagnostic("MAC0301", "boom", Location("a.py", 2, 5))
        assert str(diagnostic) == "a.py:2:5: MAC0301: boom"

    def test_str_without_location(self):
        """Test diagnostics without a position."""
        assert str(Diagnostic("MAC0401", "dropped")) == "MAC0401: dropped"

    def test_format_marks_the_span(self):
        """Test the excerpt and caret marker."""
        location = Location("a.py", 2, 5, "y = inline(f)\n", 3)
        diagnostic = Diagnostic("MAC0301", "boom", location, [Note("at f (a.py:2:5)")])
        assert diagnostic.format().splitlines() == [
            "a.py:2:5: MAC0301: boom",
            "    2 | y = inline(f)",
            "            ^~~",
            "  note: at f (a.py:2:5)",
        ]


class TestEvaluationErrors:
    """Tests for evaluation error records."""

    def test_to_diagnostic(self):
        """Test conversion keeps the kind, location and trace."""
        error = MacroEvaluationError(ZeroDivisionError("division by zero"),
                                     Location("a.py", 3, 1), ["at f (a.py:3:1)"])
        diagnostic = error.to_diagnostic()
        assert diagnostic.code == EVALUATION_FAILED
        assert diagnostic.text == "ZeroDivisionError: division by zero"
        assert diagnostic.location.line == 3
        assert [n.text for n in diagnostic.notes] == ["at f (a.py:3:1)"]

    def test_group_members_become_notes(self):
        """Test wrapped group members are listed."""
        error = MacroEvaluationError(ValueError("outer"))
        error.errors = [MacroEvaluationError(KeyError("k"), Location("a.py", 1, 1))]
        notes = error.to_diagnostic().notes
        assert len(notes) == 1
        assert notes[0].text.startswith("KeyError")
        assert notes[0].location.line == 1

    def test_timeout_code(self):
        """Test timeouts carry their own code."""
        error = MacroTimeoutError(TimeoutError("slow"))
        assert error.to_diagnostic().code == EVALUATION_TIMEOUT
        assert isinstance(error, MacroEvaluationError)

    def test_empty_message_uses_type_name(self):
        """Test exceptions without a message still describe themselves."""
        error = MacroEvaluationError(RuntimeError())
        assert str(error) == "RuntimeError"


class TestParseDefines:
    """Tests for NAME[=VALUE] parsing."""

    def test_values(self):
        """Test bare names, booleans, literals and strings."""
        defines = parse_defines(["DEBUG", "LEVEL=2", "FAST=false", "SLOW=True", "MODE=fast", "TAGS=[1, 2]"])
        assert defines == {
            "DEBUG": True,
            "LEVEL": 2,
            "FAST": False,
            "SLOW": True,
            "MODE": "fast",
            "TAGS": [1, 2],
        }

    def test_comma_separated_string(self):
        """Test a single comma-separated string."""
        assert parse_defines("DEBUG, LEVEL=3") == {"DEBUG": True, "LEVEL": 3}

    def test_later_entries_win(self):
        """Test redefinition."""
        assert parse_defines(["A=1", "A=2"]) == {"A": 2}

    def test_empty(self):
        """Test nothing to parse."""
        assert parse_defines(None) == {}
        assert parse_defines([]) == {}
        assert parse_defines(["", " "]) == {}

    def test_missing_name(self):
        """Test a value without a name is rejected."""
        with pytest.raises(ValueError):
            parse_defines(["=1"])
