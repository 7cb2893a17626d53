"""File role detection and path rules."""

import re
from enum import Enum

from .config import LiberationConfig


class FileRole(str, Enum):
    MANIFEST = "manifest"
    BUNDLER_CONFIG = "bundler_config"
    ENTRY_HTML = "entry_html"
    SOURCE = "source"
    OTHER = "other"


SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".vue", ".svelte")
HTML_EXTENSIONS = (".html", ".htm")

_BUNDLER_CONFIG = re.compile(
    r"^(vite|webpack|next|rollup|astro|svelte|nuxt)\.config\.(ts|js|mjs|cjs|mts)$"
)
_REQUIREMENTS = re.compile(r"^requirements([-_.][\w.-]+)?\.txt$")


def basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def identify_role(path: str) -> FileRole:
    """Classify a file by name into one of the rewrite roles.

    Args:
        path: Slash-separated relative path

    Returns:
        The role used to pick detectors and rewrite functions
    """
    name = basename(path)
    lowered = name.lower()

    if lowered == "package.json" or _REQUIREMENTS.match(lowered):
        return FileRole.MANIFEST
    if _BUNDLER_CONFIG.match(lowered):
        return FileRole.BUNDLER_CONFIG
    if lowered.endswith(HTML_EXTENSIONS):
        return FileRole.ENTRY_HTML
    if lowered.endswith(SOURCE_EXTENSIONS):
        return FileRole.SOURCE
    return FileRole.OTHER


def should_remove_file(path: str, config: LiberationConfig) -> bool:
    """True for platform-owned config/metadata files and directories."""
    return config.platform_for_file(path) is not None


def is_relevant_path(path: str, config: LiberationConfig) -> bool:
    """Whether a repository path belongs in the snapshot."""
    retrieval = config.retrieval
    parts = path.split("/")
    if any(part in retrieval.excluded_dirs for part in parts[:-1]):
        return False
    name = parts[-1]
    if name in retrieval.excluded_files:
        return False
    if name in retrieval.filenames or should_remove_file(path, config):
        return True
    return name.lower().endswith(retrieval.extensions)
