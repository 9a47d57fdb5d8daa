"""Syntax source - parsed source files and opaque node spans."""

from .source import SourceTree, SyntaxNode

__all__ = ['SourceTree', 'SyntaxNode']
