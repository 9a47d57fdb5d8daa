"""
Sandboxed evaluation of inline() payloads.

A payload becomes an ExecutableUnit: self-contained code plus the original
position it came from. The evaluator compiles the unit, runs it in a fresh
namespace and reads the produced value back from the exports dict. Failures
are re-wrapped so that their location points at the original file.

Snippet layout for function-shaped payloads (one wrapper line, then the
payload verbatim):

    __exports__['default'] = (
    lambda: 2 + 2
    )()

Bare expressions are evaluated verbatim in 'eval' mode.
"""

import ast
import asyncio
import builtins
import inspect
import threading
import traceback
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

from ..diagnostics import Location, MacroEvaluationError, MacroTimeoutError
from ..syntax import SourceTree, SyntaxNode
from .resolver import ModuleResolver


EXPORTS = '__exports__'

# Lines the self-invoking wrapper adds before the payload
WRAPPER_LINE_OFFSET = 1

DEFAULT_TIMEOUT = 30.0

_PACKAGE_DIR = str(Path(__file__).resolve().parent.parent)


@dataclass(frozen=True)
class ExecutableUnit:
    """
    Code extracted from an inline() payload.

    node is kept only to recover the original position; line/column are the
    1-based position of the payload's first character.
    """
    node: SyntaxNode
    code: str
    line: int
    column: int
    filename: str = "<input>"
    directory: Optional[str] = None
    mode: str = 'exec'
    line_offset: int = 0
    prefix_width: int = 0
    prelude: Tuple[ast.stmt, ...] = ()

    @property
    def tag(self) -> str:
        """Pseudo filename the snippet is compiled under."""
        return f"<inline {self.filename}:{self.line}>"

    def location(self) -> Location:
        return Location(self.filename, self.line, self.column, "", max(len(self.node.text.split("\n")[0]), 1))

    def original_position(self, line: int, column: Optional[int] = None) -> Tuple[int, int]:
        """
        Map a 1-based snippet line and 0-based column back to the original file.

        Lines of the wrapper itself map onto the payload's first character.
        """
        relative = line - 1 - self.line_offset
        if relative < 0:
            return self.line, self.column
        last = self.node.text.count("\n")
        if relative > last:
            # Trailing wrapper line: report the payload's last line
            return self.line + last, 1 if last else self.column
        if relative == 0:
            return self.line, self.column + max((column or 0) - self.prefix_width, 0)
        return self.line + relative, (column or 0) + 1


def wrap_call(code: str) -> str:
    """Wrap a function-shaped expression so it runs immediately."""
    return f"{EXPORTS}['default'] = (\n{code}\n)()"


def _bound_names(stmt: ast.stmt) -> Set[str]:
    names = set()
    for alias in stmt.names:
        if alias.name == '*':
            continue
        if alias.asname:
            names.add(alias.asname)
        elif isinstance(stmt, ast.Import):
            names.add(alias.name.partition('.')[0])
        else:
            names.add(alias.name)
    return names


def _used_names(node: ast.AST) -> Set[str]:
    return {n.id for n in ast.walk(node) if isinstance(n, ast.Name)}


def select_prelude(tree: SourceTree, node: ast.AST) -> Tuple[ast.stmt, ...]:
    """Top-level imports of the file that bind a name the payload uses."""
    used = _used_names(node)
    return tuple(stmt for stmt in tree.top_level_imports() if _bound_names(stmt) & used)


def extract_executable(payload: SyntaxNode, tree: SourceTree) -> Optional[ExecutableUnit]:
    """
    Build an executable unit from an inline() payload.

    Handles:
    - a name referring to a def/lambda in the same file, or to an imported callable
    - a lambda, which is called immediately
    - any other expression, evaluated as-is

    Returns None when a referenced function cannot be found.
    """
    node = payload.node
    line, column = tree.position(payload.start)
    base = dict(filename=tree.path, directory=str(tree.directory))

    if isinstance(node, ast.Name):
        function = tree.find_function(node.id)
        if isinstance(function, (ast.FunctionDef, ast.AsyncFunctionDef)):
            start = tree.offset(function.lineno, function.col_offset)
            end = tree.offset(function.end_lineno, function.end_col_offset)
            def_line, def_column = tree.position(start)
            code = (f"{EXPORTS}['default'] = None\n"
                    f"{tree.text[start:end]}\n"
                    f"{EXPORTS}['default'] = {function.name}()")
            return ExecutableUnit(tree.node(function), code, def_line, def_column,
                                  line_offset=WRAPPER_LINE_OFFSET,
                                  prelude=select_prelude(tree, function), **base)
        if isinstance(function, ast.Lambda):
            lambda_node = tree.node(function)
            def_line, def_column = tree.position(lambda_node.start)
            return ExecutableUnit(lambda_node, wrap_call(lambda_node.text), def_line, def_column,
                                  line_offset=WRAPPER_LINE_OFFSET,
                                  prelude=select_prelude(tree, function), **base)
        prelude = select_prelude(tree, node)
        if not prelude:
            return None
        return ExecutableUnit(payload, wrap_call(payload.text), line, column,
                              line_offset=WRAPPER_LINE_OFFSET, prelude=prelude, **base)

    if isinstance(node, ast.Lambda):
        return ExecutableUnit(payload, wrap_call(payload.text), line, column,
                              line_offset=WRAPPER_LINE_OFFSET,
                              prelude=select_prelude(tree, node), **base)

    return ExecutableUnit(payload, f"({payload.text})", line, column, mode='eval', prefix_width=1,
                          prelude=select_prelude(tree, node), **base)


def create_sandbox_context(unit: ExecutableUnit, resolver: ModuleResolver) -> dict:
    """Fresh globals for one unit: an exports dict and a directory-bound __import__."""
    sandbox_builtins = dict(builtins.__dict__)
    sandbox_builtins['__import__'] = resolver
    return {
        '__builtins__': sandbox_builtins,
        '__name__': '__inline__',
        '__file__': unit.filename,
        '__package__': None,
        EXPORTS: {},
    }


def _frame_location(frame: traceback.FrameSummary, unit: ExecutableUnit) -> Optional[Tuple[int, int]]:
    colno = getattr(frame, 'colno', None)
    if frame.filename == unit.tag:
        return unit.original_position(frame.lineno, colno)
    if frame.filename == unit.filename:
        # Hoisted imports keep their original line numbers
        return frame.lineno, (colno or 0) + 1
    return None


def as_evaluation_error(error: BaseException, unit: ExecutableUnit) -> MacroEvaluationError:
    """
    Wrap an exception raised while evaluating `unit`.

    Already-wrapped errors are returned unchanged, so wrapping is idempotent.
    """
    if isinstance(error, MacroEvaluationError):
        return error

    position = None
    trace: List[str] = []
    if isinstance(error, SyntaxError) and error.filename in (unit.tag, unit.filename):
        if error.filename == unit.tag:
            position = unit.original_position(error.lineno or 1, (error.offset or 1) - 1)
        else:
            position = (error.lineno or unit.line, error.offset or 1)
    for frame in traceback.extract_tb(error.__traceback__):
        if frame.filename.startswith(_PACKAGE_DIR):
            continue
        mapped = _frame_location(frame, unit)
        if mapped is not None:
            position = mapped
            trace.append(f"at {frame.name} ({unit.filename}:{mapped[0]}:{mapped[1]})")
        else:
            trace.append(f"at {frame.name} ({frame.filename}:{frame.lineno})")

    location = unit.location()
    if position is not None:
        location = replace(location, line=position[0], column=position[1], length=1)
    wrapped = MacroEvaluationError(error, location, trace)
    if isinstance(error, BaseExceptionGroup):
        wrapped.errors = [as_evaluation_error(inner, unit) for inner in error.exceptions]
    return wrapped


class SandboxEvaluator:
    """
    Runs executable units in isolated namespaces.

    The evaluator keeps no state between units besides its configuration, so
    it can be shared by concurrently transformed files.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def evaluate(self, unit: ExecutableUnit) -> Any:
        """
        Evaluate a unit and return the produced value.

        Raises:
            MacroEvaluationError: if the unit fails, mapped to its original position
            MacroTimeoutError: if the unit does not finish within the timeout
        """
        if self.timeout is None:
            return self._run(unit)

        outcome = {}

        def target():
            try:
                outcome['value'] = self._run(unit)
            except MacroEvaluationError as e:
                outcome['error'] = e

        # Daemon thread: a runaway unit is abandoned rather than joined at exit
        worker = threading.Thread(target=target, name=f"buildmac-inline-{unit.line}", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            error = TimeoutError(f"inline evaluation did not finish within {self.timeout:g}s")
            raise MacroTimeoutError(error, unit.location())
        if 'error' in outcome:
            raise outcome['error']
        if 'value' not in outcome:
            raise MacroEvaluationError(RuntimeError("inline evaluation ended without a result"), unit.location())
        return outcome['value']

    def _run(self, unit: ExecutableUnit) -> Any:
        namespace = create_sandbox_context(unit, ModuleResolver(unit.directory or Path.cwd()))
        try:
            if unit.prelude:
                prelude = ast.Module(body=list(unit.prelude), type_ignores=[])
                exec(compile(prelude, unit.filename, 'exec'), namespace)
            code = compile(unit.code, unit.tag, unit.mode)
            if unit.mode == 'eval':
                namespace[EXPORTS]['default'] = eval(code, namespace)
            else:
                exec(code, namespace)
            exports = namespace[EXPORTS]
            value = exports['default'] if 'default' in exports else exports
            if inspect.iscoroutine(value):
                value = asyncio.run(value)
            return value
        except (Exception, SystemExit) as e:
            raise as_evaluation_error(e, unit) from e
