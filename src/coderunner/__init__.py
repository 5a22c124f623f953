"""coderunner — sandboxed execution of untrusted source code."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from coderunner.controller import SandboxController as SandboxController
    from coderunner.execution.models import Submission as Submission
    from coderunner.profiles.registry import ProfileRegistry as ProfileRegistry

_EXPORTS = {
    "SandboxController": "coderunner.controller",
    "Submission": "coderunner.execution.models",
    "ProfileRegistry": "coderunner.profiles.registry",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'coderunner' has no attribute {name!r}")
