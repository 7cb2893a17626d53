"""Python requirements.txt parsing and pruning."""

import re

from packaging.requirements import InvalidRequirement, Requirement

from .models import Manifest, ManifestEntry


class RequirementsParser:
    """Parser for Python requirements.txt files."""

    def __init__(self):
        # Lines that carry no registry requirement
        self.skip_patterns = [
            r"^\s*#",  # Comment lines
            r"^\s*$",  # Empty lines
            r"^-r\s+",  # Include other requirements files
            r"^-c\s+",  # Constraint files
            r"^-f\s+",  # Find links
            r"^--",  # Other pip options
        ]
        self.vcs_pattern = re.compile(r"^(-e\s+)?(git|hg|svn|bzr)\+")
        self.url_pattern = re.compile(r"^(-e\s+)?(https?|file)://")
        self.path_pattern = re.compile(r"^(-e\s+)?\.{1,2}/")

    def _should_skip_line(self, line: str) -> bool:
        """Check if a line should be skipped during parsing."""
        stripped = line.strip()
        if not stripped:
            return True

        return any(re.match(pattern, stripped) for pattern in self.skip_patterns)

    def _direct_reference(self, stripped: str, line_no: int) -> ManifestEntry | None:
        """Entries pointing at VCS, URL or local path sources."""
        for pattern, source_type in (
            (self.vcs_pattern, "vcs"),
            (self.url_pattern, "url"),
            (self.path_pattern, "path"),
        ):
            if pattern.match(stripped):
                egg = re.search(r"#egg=([A-Za-z0-9_.\-]+)", stripped)
                name = egg.group(1) if egg else stripped.split("/")[-1].split("@")[0]
                return ManifestEntry(
                    name=name, spec=stripped, source_type=source_type, line=line_no
                )
        return None

    def _parse_requirement_line(self, line: str, line_no: int) -> ManifestEntry | None:
        """Parse a single requirement line using packaging library."""
        stripped = line.strip()
        if not stripped:
            return None

        direct = self._direct_reference(stripped, line_no)
        if direct:
            return direct

        try:
            # Remove inline comments for parsing, but they're preserved in raw content
            line_for_parsing = stripped.split(" #")[0].split("\t#")[0].strip()
            if not line_for_parsing:
                return None

            req = Requirement(line_for_parsing)
            source_type = "url" if req.url else "registry"

            return ManifestEntry(
                name=req.name,
                spec=str(req.specifier) if req.specifier else None,
                markers=str(req.marker) if req.marker else None,
                extras=sorted(req.extras) if req.extras else None,
                source_type=source_type,
                line=line_no,
            )

        except InvalidRequirement:
            # Skip malformed requirements gracefully
            return None

    def parse(self, content: str) -> Manifest:
        """Parse requirements.txt content into Manifest."""
        entries: list[ManifestEntry] = []

        for index, line in enumerate(content.splitlines()):
            if self._should_skip_line(line):
                continue

            entry = self._parse_requirement_line(line, index + 1)
            if entry:
                entries.append(entry)

        return Manifest(ecosystem="python", raw=content, entries=entries)


def parse_requirements(content: str) -> Manifest:
    """Parse requirements.txt content into Manifest.

    Args:
        content: The requirements.txt file content

    Returns:
        Parsed Manifest object
    """
    parser = RequirementsParser()
    return parser.parse(content)


def drop_requirements(content: str, names: set[str]) -> tuple[str, list[str]]:
    """Remove requirement lines whose package name is in ``names``.

    Names are compared case-insensitively with ``-``/``_``/``.`` folded, as pip
    does.

    Returns:
        The pruned content and the names actually removed, in file order
    """
    wanted = {normalize_name(name) for name in names}
    manifest = parse_requirements(content)
    doomed: dict[int, str] = {}
    for entry in manifest.entries:
        if entry.line is not None and normalize_name(entry.name) in wanted:
            doomed[entry.line] = entry.name

    if not doomed:
        return content, []

    lines = content.splitlines(keepends=True)
    kept = [line for number, line in enumerate(lines, start=1) if number not in doomed]
    return "".join(kept), list(doomed.values())


def normalize_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()
