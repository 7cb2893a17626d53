"""Configuration values injected into the pipeline stages.

Signature lists and scoring weights are product data, not algorithm: every
stage receives a ``LiberationConfig`` at construction and never reads the
environment itself. ``LiberationConfig.from_env`` is the single place where
environment variables are consulted.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from .errors import ConfigurationError
from .models import Severity


@dataclass(frozen=True)
class PlatformSignature:
    """Everything that identifies code as originating from one platform."""

    name: str
    # Exact package names; entries ending with "/" match a whole npm scope.
    packages: tuple[str, ...] = ()
    import_prefixes: tuple[str, ...] = ()
    cdn_hosts: tuple[str, ...] = ()
    # File or directory names owned by the platform (removed wholesale).
    files: tuple[str, ...] = ()
    # Lower-case keywords used in "@keyword" comment markers and tag attribute values.
    keywords: tuple[str, ...] = ()
    plugin_modules: tuple[str, ...] = ()
    # Markup attribute names; entries ending with "-" match a whole prefix.
    data_attributes: tuple[str, ...] = ()

    def owns_package(self, name: str) -> bool:
        for package in self.packages:
            if package.endswith("/"):
                if name.startswith(package):
                    return True
            elif name == package:
                return True
        return False

    def owns_specifier(self, specifier: str) -> bool:
        return any(
            specifier == prefix.rstrip("/") or specifier.startswith(prefix)
            for prefix in self.import_prefixes
        )

    def owns_host(self, host: str) -> bool:
        host = host.lower()
        return any(host == cdn or host.endswith("." + cdn) for cdn in self.cdn_hosts)

    def owns_attribute(self, name: str) -> bool:
        name = name.lower()
        return any(
            name.startswith(attr) if attr.endswith("-") else name == attr
            for attr in self.data_attributes
        )


@dataclass(frozen=True)
class SeverityWeights:
    critical: int = 15
    warning: int = 5
    info: int = 1
    removed_file: int = 10

    def for_severity(self, severity: Severity) -> int:
        return {
            Severity.CRITICAL: self.critical,
            Severity.WARNING: self.warning,
            Severity.INFO: self.info,
        }[severity]


AI_PROVIDERS = ("openai", "anthropic", "ollama")


@dataclass(frozen=True)
class AIConfig:
    """Settings for the external text-transform service."""

    provider: str = "openai"  # openai, anthropic, ollama
    api_key: str | None = None
    model: str | None = None
    base_url: str | None = None
    timeout: float = 60.0
    max_tokens: int = 8192
    call_delay: float = 0.1

    @property
    def enabled(self) -> bool:
        # A local Ollama server needs no key, only an explicit address.
        if self.provider == "ollama":
            return bool(self.base_url)
        return bool(self.api_key)


@dataclass(frozen=True)
class RetrievalConfig:
    api_base: str = "https://api.github.com"
    token: str | None = None
    batch_size: int = 5
    max_attempts: int = 3
    base_delay: float = 0.5
    timeout: float = 30.0
    extensions: tuple[str, ...] = (
        ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte",
        ".json", ".css", ".scss", ".html", ".htm", ".md", ".toml", ".yml",
        ".yaml", ".conf", ".txt", ".svg", ".py",
    )
    filenames: tuple[str, ...] = ("Dockerfile", ".env.example", ".gitignore")
    excluded_dirs: tuple[str, ...] = (
        "node_modules", "dist", "build", ".next", "coverage", ".git",
        "__pycache__", ".cache",
    )
    excluded_files: tuple[str, ...] = ("package-lock.json", "bun.lockb")


DEFAULT_PLATFORMS: tuple[PlatformSignature, ...] = (
    PlatformSignature(
        name="Lovable",
        packages=(
            "lovable-tagger", "@lovable/", "@gptengineer/", "gpt-engineer",
            "lovable-analytics", "gpt-engineer-tracker",
        ),
        import_prefixes=("@lovable/", "@gptengineer/", "lovable-tagger", "lovable-core"),
        cdn_hosts=(
            "lovable.app", "lovable.dev", "gptengineer.app", "cdn.gpteng.co",
        ),
        files=(
            ".lovable", ".lovablerc", "lovable.config.ts", "lovable.config.js",
            "lovable.config.json", ".lovable.json", "lovable-lock.json",
            ".gptengineer", ".gptengineer.json", ".gpteng", "gptengineer.config.json",
        ),
        keywords=("lovable", "lov", "gptengineer", "gpteng"),
        plugin_modules=("lovable-tagger",),
        data_attributes=("data-lov-", "data-lovable-", "data-gpteng-"),
    ),
    PlatformSignature(
        name="Bolt",
        packages=("bolt-core", "@bolt/"),
        import_prefixes=("@bolt/",),
        cdn_hosts=("bolt.new",),
        files=(".bolt", ".bolt.json", "bolt.config.json"),
        keywords=("bolt",),
    ),
    PlatformSignature(
        name="v0",
        packages=("@v0/", "v0-tagger", "v0-sdk"),
        import_prefixes=("@v0/", "v0-runtime"),
        cdn_hosts=("v0.dev",),
        files=(".v0", ".v0.json", "v0.config.json", "v0-manifest.json"),
        keywords=("v0",),
        plugin_modules=("v0-tagger",),
    ),
    PlatformSignature(
        name="Cursor",
        packages=("@cursor/", "cursor-runtime"),
        import_prefixes=("@cursor/", "cursor-sdk"),
        files=(".cursorrc", "cursor.config.json", ".cursor.json"),
        keywords=("cursor",),
    ),
    PlatformSignature(
        name="Replit",
        packages=("@replit/", "replit-sdk", "replit", "replit-object-storage", "replit-ai"),
        import_prefixes=("@replit/", "replit-runtime"),
        cdn_hosts=("replit.com", "repl.co"),
        files=(".replit", "replit.nix", ".replit.json"),
        keywords=("replit",),
    ),
)

DEFAULT_IMPORT_REWRITES: Mapping[str, str] = {
    "@lovable/hooks/use-mobile": "@/lib/compat/use-mobile",
    "@lovable/hooks/use-toast": "@/lib/compat/use-toast",
    "@lovable/hooks/use-sidebar": "@/lib/compat/use-sidebar",
    "@gptengineer/hooks/use-mobile": "@/lib/compat/use-mobile",
    "@gptengineer/hooks/use-toast": "@/lib/compat/use-toast",
    "@lovable/ui/use-toast": "@/lib/compat/use-toast",
}

DEFAULT_STATIC_EXTENSIONS: tuple[str, ...] = (
    "js", "css", "png", "jpg", "jpeg", "gif", "ico", "svg", "webp", "woff", "woff2",
)

AI_SYSTEM_INSTRUCTION = (
    "You are a senior front-end engineer. Remove all proprietary-platform coupling "
    "from the file below: platform SDK imports, tagging plugins, telemetry calls and "
    "data attributes. Replace platform hooks with standard React and the project's "
    "own modules. Preserve behavior and structure. Return code only, without "
    "explanation or markdown fences."
)


@dataclass(frozen=True)
class LiberationConfig:
    """Top-level configuration value for a liberation run."""

    platforms: tuple[PlatformSignature, ...] = DEFAULT_PLATFORMS
    weights: SeverityWeights = field(default_factory=SeverityWeights)
    import_rewrites: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_IMPORT_REWRITES))
    static_extensions: tuple[str, ...] = DEFAULT_STATIC_EXTENSIONS
    max_recommendations: int = 5
    compat_dir: str = "src/lib/compat"
    ai: AIConfig = field(default_factory=AIConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    system_instruction: str = AI_SYSTEM_INSTRUCTION
    data_dir: Path = Path(".liberator")

    @classmethod
    def default(cls) -> "LiberationConfig":
        return cls()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LiberationConfig":
        """Build a config from LIBERATOR_* environment variables.

        Raises:
            ConfigurationError: If LIBERATOR_AI_PROVIDER names an unknown provider
        """
        env = os.environ if environ is None else environ
        base = cls()
        provider = env.get("LIBERATOR_AI_PROVIDER", base.ai.provider).strip().lower()
        if provider not in AI_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported AI provider {provider!r}; expected one of {', '.join(AI_PROVIDERS)}"
            )

        ai = replace(
            base.ai,
            provider=provider,
            api_key=env.get("LIBERATOR_AI_API_KEY") or None,
            model=env.get("LIBERATOR_AI_MODEL") or None,
            base_url=env.get("LIBERATOR_AI_BASE_URL") or None,
            call_delay=_as_float(env.get("LIBERATOR_AI_DELAY"), base.ai.call_delay),
        )
        retrieval = replace(
            base.retrieval,
            token=env.get("LIBERATOR_GITHUB_TOKEN") or env.get("GITHUB_TOKEN") or None,
            api_base=env.get("LIBERATOR_GITHUB_API", base.retrieval.api_base),
        )
        data_dir = Path(env.get("LIBERATOR_DATA_DIR", str(base.data_dir)))
        return replace(base, ai=ai, retrieval=retrieval, data_dir=data_dir)

    # Flattened views over every configured platform.

    def platform_for_package(self, name: str) -> PlatformSignature | None:
        return next((p for p in self.platforms if p.owns_package(name)), None)

    def platform_for_specifier(self, specifier: str) -> PlatformSignature | None:
        return next((p for p in self.platforms if p.owns_specifier(specifier)), None)

    def platform_for_host(self, host: str) -> PlatformSignature | None:
        return next((p for p in self.platforms if p.owns_host(host)), None)

    def platform_for_attribute(self, name: str) -> PlatformSignature | None:
        return next((p for p in self.platforms if p.owns_attribute(name)), None)

    def platform_for_file(self, path: str) -> PlatformSignature | None:
        parts = path.split("/")
        for platform in self.platforms:
            if any(part in platform.files for part in parts):
                return platform
        return None


def _as_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default
