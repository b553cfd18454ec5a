"""
Loading the user's module for `cadence run` / `cadence check`.

- load_module(): dotted path or .py file, whichever the locator names
- import_file_path(): a standalone file under a synthetic module name
- setup_sys_path_from_cwd(): put cwd on sys.path when it is a project root

sys.path is only touched for the project root and a file's own directory.
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import os
import sys
from types import ModuleType

from cadence.core.errors import ConfigurationError, ErrorCode
from cadence.core.logging import get_logger

logger = get_logger("imports")

_PROJECT_MARKERS = ("pyproject.toml", "setup.cfg", "setup.py")


def is_file_locator(path: str) -> bool:
    return path.endswith(".py") or os.path.sep in path or "/" in path


def setup_sys_path_from_cwd() -> str | None:
    """
    Add cwd to sys.path when it holds a project marker. Returns cwd when added.

    Parent directories are never searched.
    """
    cwd = os.getcwd()
    is_root = any(os.path.exists(os.path.join(cwd, m)) for m in _PROJECT_MARKERS)
    if not is_root or cwd in sys.path:
        return None
    sys.path.insert(0, cwd)
    logger.debug(f"Added cwd to sys.path: {cwd}")
    return cwd


def _loaded_from(file_path: str) -> ModuleType | None:
    for mod in list(sys.modules.values()):
        mod_file = getattr(mod, "__file__", None)
        if mod_file and os.path.realpath(mod_file) == file_path:
            return mod
    return None


def import_file_path(file_path: str) -> ModuleType:
    """
    Import a .py file, reusing the module if that file is already imported.

    The file's directory goes on sys.path so its sibling imports resolve.
    The module is registered as cadence._dynamic.<hash of realpath>.

    Raises:
        FileNotFoundError: the file doesn't exist
        ImportError: the file can't be loaded as a module
    """
    file_path = os.path.realpath(file_path)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Module file not found: {file_path}")

    existing = _loaded_from(file_path)
    if existing is not None:
        return existing

    parent_dir = os.path.dirname(file_path)
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

    digest = hashlib.sha256(file_path.encode()).hexdigest()[:12]
    module_name = f"cadence._dynamic.{digest}"
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load module from path: {file_path}")

    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)
    return mod


def load_module(module_path: str) -> ModuleType:
    """
    Import the module a CLI locator points at.

    Raises:
        ConfigurationError: dotted path that cannot be found (E302)
    """
    if is_file_locator(module_path):
        if not module_path.endswith(".py"):
            module_path += ".py"
        return import_file_path(module_path)

    try:
        return importlib.import_module(module_path)
    except ModuleNotFoundError as e:
        raise ConfigurationError(
            message=f"module not found: {module_path}",
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=[str(e), f"sys.path: {sys.path[:5]}..."],
            help_text=(
                "run from your project directory\n"
                "or add the project root to PYTHONPATH"
            ),
        ) from e
