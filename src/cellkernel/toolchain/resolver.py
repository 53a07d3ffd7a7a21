"""Toolchain resolution: language tag to executable path.

Resolution never spawns a process. Order of precedence:

1. Override from the environment-manager collaborator (e.g. an active venv)
2. Per-language override from configuration (toolchains.paths)
3. The language's static list of conventional install locations
4. Bare command names looked up on PATH
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from cellkernel.errors import ToolchainNotFoundError
from cellkernel.logging import get_logger
from cellkernel.toolchain.languages import LanguageSpec, get_language

if TYPE_CHECKING:
    from cellkernel.config.schema import ToolchainConfig

log = get_logger("toolchain")


@runtime_checkable
class EnvironmentManager(Protocol):
    """Supplies an optional interpreter override per language.

    Implementations typically expose the active virtual environment's
    interpreter for "python" and return None for everything else.
    """

    def interpreter_for(self, language: str) -> str | None:
        """Return an executable path for the language, or None."""
        ...


@dataclass(frozen=True)
class ToolchainResolution:
    """Outcome of resolving a language's toolchain.

    Attributes:
        language: Canonical language tag that was resolved.
        path: Absolute executable path, or None when not found.
        source: Where the path came from ("environment", "config",
            "candidate", "path"), or None when not found.
        hint: Install hint when not found.
    """

    language: str
    path: str | None
    source: str | None = None
    hint: str = ""

    @property
    def found(self) -> bool:
        return self.path is not None


def is_executable(path: str) -> bool:
    """True if path names an existing executable file."""
    return os.path.isfile(path) and os.access(path, os.X_OK)


class ToolchainResolver:
    """Maps a language tag to a concrete executable path."""

    def __init__(
        self,
        environment_manager: EnvironmentManager | None = None,
        config: ToolchainConfig | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            environment_manager: Optional collaborator consulted first.
            config: Optional per-language overrides from configuration.
        """
        self._environment_manager = environment_manager
        self._overrides = dict(config.paths) if config else {}

    def set_override(self, language: str, path: str | None) -> None:
        """Set or clear a per-language override at runtime."""
        if path:
            self._overrides[language] = os.path.expanduser(path)
        else:
            self._overrides.pop(language, None)

    def resolve(self, language: str | LanguageSpec) -> ToolchainResolution:
        """Resolve the executable for a language.

        Args:
            language: Language tag or spec. Specs that borrow another
                language's toolchain (e.g. SQL runs through Python) resolve
                that language.

        Returns:
            ToolchainResolution; check .found before use.
        """
        spec = language if isinstance(language, LanguageSpec) else get_language(language)
        tool_spec = (
            spec if spec.toolchain_language == spec.name else get_language(spec.toolchain_language)
        )
        name = tool_spec.name

        if self._environment_manager is not None:
            try:
                override = self._environment_manager.interpreter_for(name)
            except Exception as e:
                log.warning("Environment manager failed for %s: %s", name, e)
                override = None
            if override and is_executable(override):
                return ToolchainResolution(spec.name, override, "environment")
            if override:
                log.debug("Ignoring missing environment override %s", override)

        configured = self._overrides.get(name)
        if configured and is_executable(configured):
            return ToolchainResolution(spec.name, configured, "config")

        for candidate in tool_spec.candidates:
            if is_executable(candidate):
                return ToolchainResolution(spec.name, candidate, "candidate")

        for command in tool_spec.commands:
            found = shutil.which(command)
            if found:
                return ToolchainResolution(spec.name, os.path.abspath(found), "path")

        hint = spec.install_hint or f"{spec.display_name} toolchain not found"
        log.info("No toolchain for %s", spec.name)
        return ToolchainResolution(spec.name, None, None, hint)

    def require(self, language: str | LanguageSpec) -> str:
        """Resolve or raise.

        Raises:
            ToolchainNotFoundError: If no executable is found.
        """
        resolution = self.resolve(language)
        if resolution.path is None:
            raise ToolchainNotFoundError(resolution.language, resolution.hint)
        return resolution.path
