"""
Macro node classification.

Recognizes the three macro shapes in a parsed Python file:

    macro_trace = ifdef('DEBUG', lambda msg: print(msg))   # guarded binding
    ifndef('RELEASE', lambda: check_invariants())          # unbound guard
    TABLE = inline(lambda: build_table())                   # inline evaluation

plus the decorator form of a guarded binding:

    @ifdef('DEBUG')
    def macro_dump(state): ...

Every function here is pure: it reads the node and the tree, and returns a
classification record or None.
"""

import ast
from dataclasses import dataclass
from typing import Optional, Union

from ..diagnostics import MacroUsageError
from ..syntax import SourceTree, SyntaxNode


IFDEF = 'ifdef'
IFNDEF = 'ifndef'
INLINE = 'inline'
GUARD_FUNCTIONS = (IFDEF, IFNDEF)
MACRO_FUNCTIONS = (IFDEF, IFNDEF, INLINE)

# Binding names should carry this prefix so they cannot collide with ordinary code
MACRO_PREFIX = 'macro_'

PLACEHOLDER = 'None'


@dataclass(frozen=True)
class Guard:
    """An ifdef/ifndef call that is not bound to a name."""
    name: Optional[str]
    payload: SyntaxNode
    negated: bool
    call: SyntaxNode
    statement: bool = False


@dataclass(frozen=True)
class Inline:
    """An inline() call. context is 'statement', 'binding' or 'nested'."""
    payload: SyntaxNode
    call: SyntaxNode
    context: str = 'nested'


@dataclass(frozen=True)
class GuardedBinding:
    """
    A guard that is the sole initializer of a named binding.

    span covers the entire enclosing statement (decorators included), so the
    declaration can be rebuilt around the placeholder when disabled.
    payload is None for the decorator form, where the payload is the
    definition itself.
    """
    name: str
    payload: Optional[SyntaxNode]
    binding_keyword: str
    exported: bool
    condition: Optional[str]
    negated: bool
    span: SyntaxNode
    call: SyntaxNode


Classification = Union[Guard, Inline, GuardedBinding]


def macro_name(node: ast.AST) -> Optional[str]:
    """Return the macro function name if node is a call to one, else None."""
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and node.func.id in MACRO_FUNCTIONS:
        return node.func.id
    return None


def is_macro_call(node: ast.AST) -> bool:
    return macro_name(node) is not None


def is_defined(name: str, defines) -> bool:
    """A define is set when present and truthy."""
    return name in defines and bool(defines[name])


def is_condition_met(condition: str, negated: bool, defines) -> bool:
    return is_defined(condition, defines) != negated


def check_arity(call: ast.Call, tree: SourceTree, expected: int):
    """
    Validate positional argument count.

    Raises:
        MacroUsageError: on a wrong count, keyword arguments or starred arguments
    """
    name = call.func.id
    start, end = tree.span(call)
    if call.keywords:
        raise MacroUsageError(name, "does not accept keyword arguments", start, end)
    if any(isinstance(arg, ast.Starred) for arg in call.args):
        raise MacroUsageError(name, "does not accept starred arguments", start, end)
    if len(call.args) != expected:
        raise MacroUsageError(name, f"with {len(call.args)} arguments (expected {expected})", start, end)


def condition_of(call: ast.Call) -> Optional[str]:
    """The define name of a guard call, or None when it is not a string literal."""
    first = call.args[0] if call.args else None
    if isinstance(first, ast.Constant) and isinstance(first.value, str):
        return first.value
    return None


def binding_target(stmt: ast.stmt) -> Optional[str]:
    """Name bound by a single-target assignment, or None."""
    if isinstance(stmt, ast.Assign):
        if len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
            return stmt.targets[0].id
        return None
    if isinstance(stmt, ast.AnnAssign) and stmt.value is not None and isinstance(stmt.target, ast.Name):
        return stmt.target.id
    return None


def guard_decorator(stmt: ast.stmt) -> Optional[ast.Call]:
    """The first ifdef/ifndef decorator of a def/class, if any."""
    for decorator in getattr(stmt, 'decorator_list', ()):
        if macro_name(decorator) in GUARD_FUNCTIONS:
            return decorator
    return None


def _keyword_of(stmt: ast.stmt) -> str:
    if isinstance(stmt, ast.AsyncFunctionDef):
        return 'async def'
    if isinstance(stmt, ast.FunctionDef):
        return 'def'
    if isinstance(stmt, ast.ClassDef):
        return 'class'
    if isinstance(stmt, ast.AnnAssign):
        return 'annotated'
    return 'assign'


def classify_statement(stmt: ast.stmt, tree: SourceTree) -> Optional[Classification]:
    """
    Classify a statement whose value (or decorator) is a macro call.

    Returns a GuardedBinding, an Inline with context 'binding'/'statement', a
    statement-level Guard, or None.
    """
    if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        decorator = guard_decorator(stmt)
        if decorator is None:
            return None
        check_arity(decorator, tree, 1)
        return GuardedBinding(
            name=stmt.name,
            payload=None,
            binding_keyword=_keyword_of(stmt),
            exported=not stmt.name.startswith('_'),
            condition=condition_of(decorator),
            negated=decorator.func.id == IFNDEF,
            span=tree.node(stmt),
            call=tree.node(decorator),
        )

    if isinstance(stmt, (ast.Assign, ast.AnnAssign)):
        call = stmt.value
        name = macro_name(call)
        target = binding_target(stmt)
        if name is None or target is None:
            return None
        if name == INLINE:
            check_arity(call, tree, 1)
            return Inline(tree.node(call.args[0]), tree.node(call), 'binding')
        check_arity(call, tree, 2)
        return GuardedBinding(
            name=target,
            payload=tree.node(call.args[1]),
            binding_keyword=_keyword_of(stmt),
            exported=not target.startswith('_'),
            condition=condition_of(call),
            negated=name == IFNDEF,
            span=tree.node(stmt),
            call=tree.node(call),
        )

    if isinstance(stmt, ast.Expr):
        call = stmt.value
        name = macro_name(call)
        if name is None:
            return None
        if name == INLINE:
            check_arity(call, tree, 1)
            return Inline(tree.node(call.args[0]), tree.node(call), 'statement')
        check_arity(call, tree, 2)
        return Guard(condition_of(call), tree.node(call.args[1]), name == IFNDEF, tree.node(call), True)

    return None


def classify_expression(call: ast.AST, tree: SourceTree) -> Optional[Classification]:
    """Classify a macro call nested inside other code."""
    name = macro_name(call)
    if name is None:
        return None
    if name == INLINE:
        check_arity(call, tree, 1)
        return Inline(tree.node(call.args[0]), tree.node(call), 'nested')
    check_arity(call, tree, 2)
    return Guard(condition_of(call), tree.node(call.args[1]), name == IFNDEF, tree.node(call))


def classify(node: ast.AST, tree: SourceTree, parent: Optional[ast.AST] = None) -> Optional[Classification]:
    """
    Classify any node of the tree.

    A macro call that is the value of an assignment or expression statement is
    classified through its statement; visiting the call itself then yields
    None so the same macro is never reported twice.
    """
    if isinstance(node, ast.stmt):
        return classify_statement(node, tree)
    if not is_macro_call(node):
        return None
    if parent is None:
        parent = tree.parent(node)
    if isinstance(parent, ast.Expr):
        return None
    if isinstance(parent, (ast.Assign, ast.AnnAssign)) and parent.value is node and binding_target(parent):
        return None
    if isinstance(parent, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and node in parent.decorator_list:
        return None
    return classify_expression(node, tree)


def needs_parentheses(call: ast.AST, parent: Optional[ast.AST]) -> bool:
    """Whether a replacement for `call` must be parenthesized to keep its precedence."""
    if isinstance(parent, ast.Attribute):
        return True
    if isinstance(parent, ast.Subscript):
        return parent.value is call
    if isinstance(parent, ast.Call):
        return parent.func is call
    # Comprehension clauses and slice bounds reject a bare conditional or lambda
    return isinstance(parent, (ast.UnaryOp, ast.BinOp, ast.BoolOp, ast.Compare, ast.Await,
                               ast.IfExp, ast.Starred, ast.FormattedValue, ast.comprehension, ast.Slice))
