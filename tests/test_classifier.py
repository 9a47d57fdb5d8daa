"""Tests for macro node classification."""

import ast

import pytest

from buildmac.analysis.classifier import (
    Guard, GuardedBinding, Inline,
    classify, is_condition_met, is_defined, needs_parentheses,
)
from buildmac.diagnostics import MacroUsageError

from .conftest import parse


def first_statement(source: str):
    tree = parse(source)
    return tree, tree.module.body[0]


class TestGuardedBindings:
    """Tests for guards bound to a name."""

    def test_assignment(self):
        """Test a plain assignment binding."""
        tree, stmt = first_statement("macro_x = ifdef('DEBUG', lambda: 1)\n")
        result = classify(stmt, tree)
        assert isinstance(result, GuardedBinding)
        assert result.name == "macro_x"
        assert result.binding_keyword == "assign"
        assert result.exported
        assert result.condition == "DEBUG"
        assert not result.negated
        assert result.payload.get_text() == "lambda: 1"
        assert result.span.get_text() == "macro_x = ifdef('DEBUG', lambda: 1)"

    def test_annotated_private_ifndef(self):
        """Test annotated, underscore-prefixed, negated bindings."""
        tree, stmt = first_statement("_macro_x: int = ifndef('FAST', 1)\n")
        result = classify(stmt, tree)
        assert result.binding_keyword == "annotated"
        assert not result.exported
        assert result.negated

    def test_decorated_class(self):
        """Test the decorator form on a class."""
        tree, stmt = first_statement("@ifdef('DEBUG')\nclass macro_Probe:\n    pass\n")
        result = classify(stmt, tree)
        assert result.binding_keyword == "class"
        assert result.payload is None
        assert result.span.start == 0
        assert result.call.get_text() == "ifdef('DEBUG')"

    def test_decorated_async_function(self):
        """Test the decorator form on an async def."""
        tree, stmt = first_statement("@ifndef('X')\nasync def macro_run():\n    pass\n")
        result = classify(stmt, tree)
        assert result.binding_keyword == "async def"
        assert result.negated

    def test_decorated_def_without_guard(self):
        """Test ordinary decorators are ignored."""
        tree, stmt = first_statement("@property\ndef value(self):\n    pass\n")
        assert classify(stmt, tree) is None

    def test_destructuring_is_not_a_binding(self):
        """Test tuple targets make the guard an unbound expression."""
        tree, stmt = first_statement("a, b = ifdef('F', (1, 2))\n")
        assert classify(stmt, tree) is None
        result = classify(stmt.value, tree)
        assert isinstance(result, Guard)
        assert not result.statement


class TestGuardsAndInlines:
    """Tests for unbound guards and inline calls."""

    def test_statement_guard(self):
        """Test an expression statement guard."""
        tree, stmt = first_statement("ifdef('DEBUG', lambda: setup())\n")
        result = classify(stmt, tree)
        assert isinstance(result, Guard)
        assert result.statement
        assert result.name == "DEBUG"

    def test_call_under_statement_is_not_reported_twice(self):
        """Test the call node of a classified statement yields None."""
        tree, stmt = first_statement("ifdef('DEBUG', 1)\n")
        assert classify(stmt.value, tree) is None
        tree, stmt = first_statement("macro_x = ifdef('DEBUG', 1)\n")
        assert classify(stmt.value, tree) is None

    def test_malformed_condition(self):
        """Test a non-literal condition gives name None."""
        tree, stmt = first_statement("ifdef(FLAG, 1)\n")
        assert classify(stmt, tree).name is None

    def test_inline_contexts(self):
        """Test inline calls in each position."""
        tree, stmt = first_statement("inline(lambda: 1)\n")
        assert classify(stmt, tree).context == "statement"
        tree, stmt = first_statement("x = inline(lambda: 1)\n")
        assert classify(stmt, tree).context == "binding"
        tree, stmt = first_statement("f(inline(lambda: 1))\n")
        result = classify(stmt.value.args[0], tree)
        assert isinstance(result, Inline)
        assert result.context == "nested"
        assert result.payload.get_text() == "lambda: 1"

    def test_attribute_calls_are_not_macros(self):
        """Test only bare-name calls are recognized."""
        tree, stmt = first_statement("x = lib.ifdef('A', 1)\n")
        assert classify(stmt, tree) is None
        assert classify(stmt.value, tree) is None


class TestUsageErrors:
    """Tests for macro arity checks."""

    @pytest.mark.parametrize("source", [
        "x = ifdef('A')\n",
        "x = ifdef('A', 1, 2)\n",
        "x = inline()\n",
        "x = inline(1, 2)\n",
        "x = inline(payload=1)\n",
        "x = ifdef(*args)\n",
        "@ifdef('A', 1)\ndef macro_f():\n    pass\n",
    ])
    def test_wrong_shape_raises(self, source):
        """Test wrong argument shapes raise MacroUsageError."""
        tree, stmt = first_statement(source)
        with pytest.raises(MacroUsageError) as info:
            classify(stmt, tree)
        assert info.value.start < info.value.end


class TestConditions:
    """Tests for define checks."""

    def test_is_defined(self):
        """Test presence and truthiness."""
        defines = {"A": True, "B": False, "C": 0, "D": "yes"}
        assert is_defined("A", defines)
        assert not is_defined("B", defines)
        assert not is_defined("C", defines)
        assert is_defined("D", defines)
        assert not is_defined("E", defines)

    def test_negation(self):
        """Test ifndef inverts the check."""
        assert is_condition_met("A", False, {"A": 1})
        assert not is_condition_met("A", True, {"A": 1})
        assert is_condition_met("A", True, {})


class TestParentheses:
    """Tests for precedence-sensitive positions."""

    @pytest.mark.parametrize("source,expected", [
        ("x = M.attr\n", True),
        ("x = M[0]\n", True),
        ("x = a[M]\n", False),
        ("x = M()\n", True),
        ("x = f(M)\n", False),
        ("x = -M\n", True),
        ("x = M * 2\n", True),
        ("x = M or y\n", True),
        ("x = M < 2\n", True),
        ("x = [M]\n", False),
        ("x = M if c else 0\n", True),
        ("x = a if M else b\n", True),
        ("x = [*M]\n", True),
        ("x = f'{M}'\n", True),
        ("x = [v for v in M]\n", True),
        ("x = [v for v in a if M]\n", True),
        ("x = a[M:]\n", True),
        ("x = lambda: M\n", False),
    ])
    def test_needs_parentheses(self, source, expected):
        """Test which parents require grouping."""
        tree = parse(source)
        node = next(n for n in tree.walk() if isinstance(n, ast.Name) and n.id == "M")
        assert needs_parentheses(node, tree.parent(node)) is expected
