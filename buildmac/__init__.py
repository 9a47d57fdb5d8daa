"""
buildmac - build-time conditional compilation and inline evaluation for Python sources.

Macros:
    ifdef('NAME', payload)    keep payload when NAME is defined
    ifndef('NAME', payload)   keep payload when NAME is not defined
    inline(payload)           evaluate payload now, splice in its literal value
"""

__version__ = "0.1.0"

from .analysis import MacroMetadata, MetadataAnalyzer, analyze_macro_metadata
from .config import parse_defines
from .diagnostics import (
    Diagnostic, Location, Note,
    MacroError, MacroEvaluationError, MacroRenderError, MacroTimeoutError,
    MacroUsageError, SourceParseError, SubstitutionOverlapError,
)
from .engine import BuildResult, BuildState, MacroEngine
from .sandbox import SandboxEvaluator
from .syntax import SourceTree
from .transform import Substitution, TransformResult, apply_substitutions, transform_file

__all__ = [
    'MacroEngine', 'BuildResult', 'BuildState',
    'analyze_macro_metadata', 'transform_file', 'parse_defines',
    'MacroMetadata', 'MetadataAnalyzer', 'SourceTree', 'SandboxEvaluator',
    'Substitution', 'apply_substitutions', 'TransformResult',
    'Diagnostic', 'Location', 'Note',
    'MacroError', 'MacroEvaluationError', 'MacroRenderError', 'MacroTimeoutError',
    'MacroUsageError', 'SourceParseError', 'SubstitutionOverlapError',
]
