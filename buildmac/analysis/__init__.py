"""Macro analysis - node classification and build-wide metadata."""

from .classifier import classify, Guard, Inline, GuardedBinding
from .metadata import MacroMetadata, MetadataAnalyzer, analyze_macro_metadata

__all__ = [
    'classify', 'Guard', 'Inline', 'GuardedBinding',
    'MacroMetadata', 'MetadataAnalyzer', 'analyze_macro_metadata',
]
