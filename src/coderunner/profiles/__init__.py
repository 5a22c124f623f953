"""Runtime profile registry — one fixed execution envelope per language."""

from coderunner.profiles.builtin import BUILTIN_PROFILES
from coderunner.profiles.models import ExecutionProfile, LaunchPlan, PrivilegeLevel
from coderunner.profiles.registry import ProfileRegistry

__all__ = [
    "BUILTIN_PROFILES",
    "ExecutionProfile",
    "LaunchPlan",
    "PrivilegeLevel",
    "ProfileRegistry",
]
