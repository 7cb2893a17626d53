"""Node.js package.json parsing."""

import json

from .models import Manifest, ManifestEntry

DEPENDENCY_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def classify_spec(spec: str) -> str:
    """Return the source type of an npm version specifier."""
    lowered = spec.strip().lower()
    if lowered.startswith(("git+", "git:", "github:", "gitlab:", "bitbucket:")):
        return "vcs"
    if lowered.startswith(("file:", "link:", "./", "../", "/")):
        return "path"
    if lowered.startswith("workspace:"):
        return "workspace"
    if lowered.startswith(("http://", "https://")):
        return "url"
    return "registry"


def load_package_json(content: str) -> dict:
    """Decode package.json, raising ValueError when it is not a JSON object."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid package.json: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Invalid package.json: root must be an object")
    return data


def parse_package_json(content: str) -> Manifest:
    """Parse package.json content into Manifest.

    Args:
        content: The package.json file content

    Returns:
        Parsed Manifest object with one entry per direct dependency
    """
    data = load_package_json(content)
    entries: list[ManifestEntry] = []

    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            spec_str = spec if isinstance(spec, str) else None
            entries.append(
                ManifestEntry(
                    name=name,
                    spec=spec_str,
                    source_type=classify_spec(spec_str) if spec_str else "registry",
                    section=section,
                )
            )

    return Manifest(ecosystem="node", raw=content, entries=entries)
