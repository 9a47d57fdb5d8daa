"""
Substitution collection.

Walks one file's syntax tree top-down and turns every macro into one or more
substitutions against the original text:

    macro_x = ifdef('F', lambda: 1)    ->  macro_x = None           (F unset)
    macro_x = ifdef('F', lambda: 1)    ->  macro_x = lambda: 1      (F set)
    ifdef('F', lambda: setup())        ->  (lambda: setup())()      (F set)
    SIZE = inline(lambda: 2 + 2)       ->  SIZE = 4
    macro_x(1)                         ->  None                     (macro_x disabled)

A disabled guard claims its whole statement, so nothing inside it is
visited. An enabled guard only trims its own call syntax away, and the walk
continues into the payload so nested macros are still handled.
"""

import ast
import re
from dataclasses import replace
from typing import List, Optional, Tuple

from ..analysis.classifier import (
    Guard, GuardedBinding, Inline, PLACEHOLDER,
    classify, is_condition_met, needs_parentheses,
)
from ..diagnostics import (
    Diagnostic, MacroEvaluationError, MacroRenderError, MacroUsageError,
    INLINE_FUNCTION_NOT_FOUND, INVALID_MACRO_CALL, OVERLAPPING_SUBSTITUTION,
)
from ..sandbox import SandboxEvaluator, extract_executable, render_value
from ..syntax import SyntaxNode
from .applier import Substitution
from .state import TransformState


# Opening of an f-string literal; group 1 is its quote
FSTRING_OPEN = re.compile(r"(?i)(?<!\w)(?:rf|fr|f)('{3}|\"{3}|['\"])")



class SubstitutionCollector:
    """Collects the substitutions for one file."""

    def __init__(self, state: TransformState, evaluator: Optional[SandboxEvaluator] = None):
        self.state = state
        self.tree = state.tree
        self.evaluator = evaluator if evaluator is not None else SandboxEvaluator()
        self.disabled = state.metadata.disabled_macro_names
        self.substitutions: List[Substitution] = []

    def collect(self) -> List[Substitution]:
        """
        Walk the tree once and return substitutions sorted by start offset.

        Diagnostics are appended to the state; the source text is untouched.
        """
        self.substitutions = []
        stack: List[Tuple[ast.AST, Optional[ast.AST]]] = [(self.tree.module, None)]
        while stack:
            node, parent = stack.pop()
            children = self._handle(node, parent)
            if children is None:
                children = list(ast.iter_child_nodes(node))
            for child in reversed(children):
                stack.append((child, node))
        return self._drop_overlaps(self.substitutions)

    # Diagnostics

    def _warn(self, code: str, message: str, start: int, end: int):
        self.state.warnings.append(Diagnostic(code, message, self.tree.location(start, end)))

    def _error(self, code: str, message: str, start: int, end: int):
        self.state.errors.append(Diagnostic(code, message, self.tree.location(start, end)))

    def _evaluation_error(self, error: MacroEvaluationError):
        diagnostic = error.to_diagnostic()
        if diagnostic.location is not None:
            line_text = self.tree.line_text(diagnostic.location.line)
            diagnostic.location = replace(diagnostic.location, line_text=line_text)
        self.state.errors.append(diagnostic)

    # Node handling

    def _replace(self, start: int, end: int, replacement: str):
        self.substitutions.append(Substitution(start, end, replacement))

    def _handle(self, node: ast.AST, parent: Optional[ast.AST]) -> Optional[List[ast.AST]]:
        """
        Emit substitutions for one node.

        Returns the children still to visit: None for all of them, an empty
        list when the node's span has been claimed.
        """
        try:
            result = classify(node, self.tree, parent)
        except MacroUsageError as e:
            self._error(INVALID_MACRO_CALL, str(e), e.start, e.end)
            return []

        if isinstance(result, GuardedBinding):
            return self._guarded_binding(result)
        if isinstance(result, Guard):
            return self._guard(result, parent)
        if isinstance(result, Inline):
            return self._inline(result, parent)

        if not self.disabled:
            return None
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in self.disabled:
            self._replace(*self.tree.span(node), PLACEHOLDER)
            return []
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load) and node.id in self.disabled:
            self._replace(*self.tree.span(node), PLACEHOLDER)
            return []
        return None

    def _unwrap(self, call: SyntaxNode, payload: SyntaxNode, invoke: bool = False, parenthesize: bool = False):
        """Remove the guard call around its payload, optionally invoking it."""
        if invoke:
            head, tail = "(", ")()"
        elif parenthesize or "\n" in payload.text:
            head, tail = "(", ")"
        else:
            head, tail = "", ""
        self._replace(call.start, payload.start, head)
        self._replace(payload.end, call.end, tail)

    def _decorator_lines(self, decorator: ast.expr) -> Tuple[int, int]:
        """Span of the lines holding a decorator, indentation and newline included."""
        start = self.tree.decorator_start(decorator)
        line, _ = self.tree.position(start)
        line_start = self.tree.line_starts[line - 1]
        if not self.tree.text[line_start:start].strip():
            start = line_start
        if decorator.end_lineno < len(self.tree.line_starts):
            end = self.tree.line_starts[decorator.end_lineno]
        else:
            end = len(self.tree.text)
        return start, end

    def _guarded_binding(self, binding: GuardedBinding) -> List[ast.AST]:
        statement = binding.span.node
        if binding.name in self.disabled:
            # The statement is claimed as a whole: nothing inside it is visited
            if binding.payload is None:
                self._replace(binding.span.start, binding.span.end, f"{binding.name} = {PLACEHOLDER}")
            else:
                self._replace(binding.call.start, binding.call.end, PLACEHOLDER)
            return []

        if binding.payload is None:
            # Decorator form: drop the decorator's own lines, keep the definition
            self._replace(*self._decorator_lines(binding.call.node), "")
            return [child for child in ast.iter_child_nodes(statement) if child is not binding.call.node]

        self._unwrap(binding.call, binding.payload)
        children = [child for child in ast.iter_child_nodes(statement) if child is not binding.call.node]
        return children + [binding.payload.node]

    def _guard(self, guard: Guard, parent: Optional[ast.AST]) -> List[ast.AST]:
        # A guard without a literal condition cannot be disabled and is kept
        active = guard.name is None or is_condition_met(guard.name, guard.negated, self.state.defines)
        if not active:
            self._replace(guard.call.start, guard.call.end, PLACEHOLDER)
            return []
        invoke = guard.statement and isinstance(guard.payload.node, ast.Lambda)
        self._unwrap(guard.call, guard.payload, invoke, needs_parentheses(guard.call.node, parent))
        return [guard.payload.node]

    def _inline(self, inline: Inline, parent: Optional[ast.AST]) -> List[ast.AST]:
        call, payload = inline.call, inline.payload
        replacement = PLACEHOLDER
        unit = extract_executable(payload, self.tree)
        if unit is None:
            self._warn(INLINE_FUNCTION_NOT_FOUND,
                       f"Function inline({payload.text}) not found in {self.tree.path}",
                       payload.start, payload.end)
        else:
            try:
                value = self.evaluator.evaluate(unit)
                replacement = render_value(value, self._fstring_quotes(call))
            except MacroEvaluationError as e:
                self._evaluation_error(e)
            except ValueError as e:
                self._evaluation_error(MacroRenderError(e, self.tree.location(call.start, call.end)))
        if inline.context == 'nested' and needs_parentheses(call.node, parent):
            replacement = f"({replacement})"
        self._replace(call.start, call.end, replacement)
        return []

    def _fstring_quotes(self, call: SyntaxNode) -> Tuple[str, ...]:
        """Quote characters opening the f-strings around a call."""
        outermost = None
        node = self.tree.parent(call.node)
        while node is not None:
            if isinstance(node, ast.JoinedStr):
                outermost = node
            node = self.tree.parent(node)
        if outermost is None:
            return ()
        start, _ = self.tree.span(outermost)
        opened = FSTRING_OPEN.finditer(self.tree.text, start, call.start)
        return tuple(sorted({match.group(1)[0] for match in opened}))

    def _drop_overlaps(self, substitutions: List[Substitution]) -> List[Substitution]:
        """Keep the outer of two overlapping spans; warn about the dropped one."""
        ordered = sorted(substitutions, key=lambda s: (s.start, -s.end))
        kept: List[Substitution] = []
        for sub in ordered:
            if kept and sub.start < kept[-1].end:
                self._warn(OVERLAPPING_SUBSTITUTION,
                           f"Dropped substitution [{sub.start}, {sub.end}) overlapping "
                           f"[{kept[-1].start}, {kept[-1].end})",
                           sub.start, sub.end)
                continue
            kept.append(sub)
        return kept
