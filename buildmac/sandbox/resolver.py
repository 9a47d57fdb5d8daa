"""
Module resolution for sandboxed snippets.

A ModuleResolver stands in for __import__ inside the sandbox. Absolute
imports go through the regular import system first; modules that are not
importable from sys.path, and all relative imports, are looked up next to the
original source file. Locally loaded modules live only in the resolver's own
cache, so nothing leaks into sys.modules or sys.path between units.
"""

import builtins
import importlib.machinery
import importlib.util
import types
from pathlib import Path
from typing import Dict, List, Optional


class ModuleResolver:
    """__import__ replacement bound to one directory."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.modules: Dict[str, types.ModuleType] = {}

    def __repr__(self):
        return f"ModuleResolver({str(self.directory)!r})"

    def __call__(self, name, globals=None, locals=None, fromlist=(), level=0):
        if level == 0:
            try:
                return builtins.__import__(name, globals, locals, fromlist, 0)
            except ModuleNotFoundError as e:
                if e.name is None or name.partition('.')[0] != e.name.partition('.')[0]:
                    raise
            return self._import_local(name, self.directory, fromlist)

        base = self.directory
        for _ in range(level - 1):
            base = base.parent
        if not name:
            # from . import a, b
            return self._namespace(base, fromlist)
        return self._import_local(name, base, fromlist, relative=True)

    def resolve(self, name: str) -> types.ModuleType:
        """Import `name` and return the leaf module, like importlib.import_module."""
        return self(name, fromlist=('*',))

    def _import_local(self, name: str, base: Path, fromlist, relative: bool = False) -> types.ModuleType:
        parts = name.split('.')
        search: List[str] = [str(base)]
        top: Optional[types.ModuleType] = None
        module: Optional[types.ModuleType] = None
        for index, part in enumerate(parts):
            key = f"{base}:{'.'.join(parts[:index + 1])}"
            child = self.modules.get(key)
            if child is None:
                child = self._load(part, search, '.'.join(parts[:index + 1]))
                self.modules[key] = child
                if module is not None:
                    setattr(module, part, child)
            module = child
            if top is None:
                top = child
            search = list(getattr(module, '__path__', []))
        for item in fromlist or ():
            if item != '*' and not hasattr(module, item) and getattr(module, '__path__', None):
                setattr(module, item, self._load(item, list(module.__path__), f"{name}.{item}"))
        if fromlist or relative:
            return module
        return top

    def _namespace(self, base: Path, fromlist) -> types.ModuleType:
        namespace = types.ModuleType(base.name or str(base))
        namespace.__path__ = [str(base)]
        for item in fromlist or ():
            key = f"{base}:{item}"
            if key not in self.modules:
                self.modules[key] = self._load(item, [str(base)], item)
            setattr(namespace, item, self.modules[key])
        return namespace

    def _load(self, part: str, search: List[str], qualname: str) -> types.ModuleType:
        spec = importlib.machinery.PathFinder.find_spec(part, search)
        if spec is None or spec.loader is None:
            raise ModuleNotFoundError(f"No module named {qualname!r} (searched {', '.join(search)})",
                                      name=qualname)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
