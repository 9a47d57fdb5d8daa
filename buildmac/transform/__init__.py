"""
Per-file macro transformation.

transform_file() collects the substitutions for one file and applies them to
its original text.
"""

from typing import Mapping, Optional

from ..analysis import MacroMetadata, analyze_macro_metadata
from ..sandbox import SandboxEvaluator
from ..syntax import SourceTree
from .applier import Substitution, apply_substitutions
from .collector import SubstitutionCollector
from .state import TransformResult, TransformState


def transform_file(tree: SourceTree, text: Optional[str] = None,
                   metadata: Optional[MacroMetadata] = None, defines: Mapping = None,
                   evaluator: Optional[SandboxEvaluator] = None) -> TransformResult:
    """
    Rewrite the macros of one file.

    Args:
        tree: Parsed file
        text: Current text of the file; re-parsed if it differs from the tree's
        metadata: Build metadata; when omitted the file is analyzed on its own
        defines: Build-time defines
        evaluator: Evaluator for inline() payloads

    Returns:
        TransformResult with the new text and the file's diagnostics. A file
        without macros is returned unchanged with no diagnostics.
    """
    defines = defines if defines is not None else {}
    if text is not None and text != tree.text:
        tree = SourceTree.parse(text, tree.path)
    if metadata is None:
        metadata = analyze_macro_metadata([tree], defines)
    if tree.path not in metadata.files_with_macros:
        return TransformResult(tree.text, path=tree.path)

    state = TransformState(tree, defines, metadata)
    substitutions = SubstitutionCollector(state, evaluator).collect()
    new_text = apply_substitutions(state.source_text, substitutions)
    return TransformResult(new_text, state.errors, state.warnings,
                           path=tree.path, changed=new_text != tree.text)


__all__ = [
    'Substitution', 'apply_substitutions', 'SubstitutionCollector',
    'TransformState', 'TransformResult', 'transform_file',
]
