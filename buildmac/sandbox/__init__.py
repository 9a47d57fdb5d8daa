"""Sandboxed build-time evaluation of inline payloads."""

from .evaluator import (
    ExecutableUnit, SandboxEvaluator, as_evaluation_error, extract_executable,
    WRAPPER_LINE_OFFSET, DEFAULT_TIMEOUT,
)
from .render import render_value
from .resolver import ModuleResolver

__all__ = [
    'ExecutableUnit', 'SandboxEvaluator', 'as_evaluation_error', 'extract_executable',
    'WRAPPER_LINE_OFFSET', 'DEFAULT_TIMEOUT', 'render_value', 'ModuleResolver',
]
