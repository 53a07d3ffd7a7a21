"""Language specs and toolchain resolution."""

from cellkernel.toolchain.languages import (
    LANGUAGES,
    CompiledLanguage,
    InterpretedLanguage,
    LanguageSpec,
    get_language,
    normalize_language,
    supported_languages,
)
from cellkernel.toolchain.resolver import (
    EnvironmentManager,
    ToolchainResolution,
    ToolchainResolver,
)

__all__ = [
    "LANGUAGES",
    "CompiledLanguage",
    "EnvironmentManager",
    "InterpretedLanguage",
    "LanguageSpec",
    "ToolchainResolution",
    "ToolchainResolver",
    "get_language",
    "normalize_language",
    "supported_languages",
]
