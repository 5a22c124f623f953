"""ProfileRegistry — closed, read-only mapping from language to profile.

The registry is built once at process start and never mutated afterwards.
There is no ``register()`` method; the set of profiles is fixed by code and
static configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from coderunner.errors import SettingsError, UnknownLanguageError
from coderunner.profiles.builtin import BUILTIN_PROFILES
from coderunner.profiles.models import ExecutionProfile

if TYPE_CHECKING:
    from coderunner.config.models import ControllerSettings

logger = logging.getLogger(__name__)


class ProfileRegistry:
    """Resolve language identifiers (and aliases) to :class:`ExecutionProfile`."""

    def __init__(self, profiles: Iterable[ExecutionProfile]) -> None:
        by_language: dict[str, ExecutionProfile] = {}
        index: dict[str, ExecutionProfile] = {}

        for profile in profiles:
            if profile.language in by_language:
                msg = f"duplicate profile for language {profile.language!r}"
                raise ValueError(msg)
            by_language[profile.language] = profile
            for identifier in profile.identifiers:
                owner = index.get(identifier)
                if owner is not None and owner is not profile:
                    msg = (
                        f"identifier {identifier!r} claimed by both "
                        f"{owner.language!r} and {profile.language!r}"
                    )
                    raise ValueError(msg)
                index[identifier] = profile

        self._profiles = MappingProxyType(by_language)
        self._index = MappingProxyType(index)

    @classmethod
    def builtin(cls) -> ProfileRegistry:
        """Registry with the built-in Java, C, C++, Python and JavaScript profiles."""
        return cls(BUILTIN_PROFILES)

    @classmethod
    def from_settings(cls, settings: ControllerSettings) -> ProfileRegistry:
        """Build the registry from built-in profiles plus static configuration.

        ``settings.profiles`` entries for a built-in language are merged over
        the built-in values; entries for any other language must be complete
        profile definitions.  ``settings.enabled_languages`` (if set) keeps only
        the listed languages.

        Raises:
            SettingsError: If an entry does not validate or an enabled
                language has no profile.
        """
        builtin = {profile.language: profile for profile in BUILTIN_PROFILES}
        profiles = dict(builtin)

        for language, override in settings.profiles.items():
            key = language.strip().lower()
            base: dict[str, Any] = builtin[key].model_dump() if key in builtin else {}
            data = {**base, **override, "language": key}
            try:
                profiles[key] = ExecutionProfile.model_validate(data)
            except ValidationError as exc:
                raise SettingsError(f"Invalid profile {key!r}: {exc}") from exc

        if settings.enabled_languages is not None:
            enabled = [name.strip().lower() for name in settings.enabled_languages]
            missing = [name for name in enabled if name not in profiles]
            if missing:
                raise SettingsError(f"Enabled languages without a profile: {', '.join(missing)}")
            profiles = {name: profiles[name] for name in enabled}

        try:
            registry = cls(profiles.values())
        except ValueError as exc:
            raise SettingsError(str(exc)) from exc
        logger.info("Registered %d language profile(s): %s", len(registry), ", ".join(registry.languages()))
        return registry

    def lookup(self, language: str) -> ExecutionProfile:
        """Return the profile for *language* (case-insensitive, aliases allowed).

        Raises:
            UnknownLanguageError: If no profile matches.
        """
        profile = self._index.get(language.strip().lower())
        if profile is None:
            raise UnknownLanguageError(language)
        return profile

    def languages(self) -> list[str]:
        """Canonical identifiers in registration order."""
        return list(self._profiles)

    def profiles(self) -> list[ExecutionProfile]:
        return list(self._profiles.values())

    def __contains__(self, language: object) -> bool:
        return isinstance(language, str) and language.strip().lower() in self._index

    def __iter__(self) -> Iterator[ExecutionProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
