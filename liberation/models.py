"""Core data models for the liberation pipeline."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Mapping


@dataclass(frozen=True)
class FileEntry:
    """A single project file, keyed by its slash-separated relative path."""

    path: str
    content: str | bytes

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)

    @property
    def text(self) -> str:
        """Text content, or an empty string for binary files."""
        return self.content if isinstance(self.content, str) else ""


class ProjectSnapshot:
    """Read-only set of files produced once per run by the retriever.

    Insertion order follows fetch completion and carries no meaning;
    consumers should iterate ``sorted_paths()``.
    """

    def __init__(self, entries: Iterable[FileEntry] = ()):
        self._entries: dict[str, FileEntry] = {}
        for entry in entries:
            self._entries[entry.path] = entry

    @classmethod
    def from_mapping(cls, files: Mapping[str, str | bytes]) -> "ProjectSnapshot":
        return cls(FileEntry(path=path, content=content) for path, content in files.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self._entries.values())

    def __getitem__(self, path: str) -> FileEntry:
        return self._entries[path]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectSnapshot):
            return NotImplemented
        return self._entries == other._entries

    def get(self, path: str) -> FileEntry | None:
        return self._entries.get(path)

    def paths(self) -> list[str]:
        return list(self._entries)

    def sorted_paths(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> list[FileEntry]:
        """Entries in path order."""
        return [self._entries[path] for path in self.sorted_paths()]

    def without(self, paths: Iterable[str]) -> "ProjectSnapshot":
        dropped = set(paths)
        return ProjectSnapshot(e for e in self._entries.values() if e.path not in dropped)

    def with_files(self, entries: Iterable[FileEntry]) -> "ProjectSnapshot":
        merged = dict(self._entries)
        for entry in entries:
            merged[entry.path] = entry
        return ProjectSnapshot(merged.values())

    def as_dict(self) -> dict[str, str | bytes]:
        return {entry.path: entry.content for entry in self._entries.values()}


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"info": 0, "warning": 1, "critical": 2}[self.value]


@dataclass(frozen=True)
class Issue:
    """One detected proprietary-platform coupling."""

    id: str
    severity: Severity
    file_path: str
    description: str
    rule: str = ""
    platform: str | None = None
    line: int | None = None
    suggestion: str | None = None


class DependencyStatus(str, Enum):
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DependencyFinding:
    """A direct manifest entry and its portability verdict."""

    name: str
    declared_version: str | None
    status: DependencyStatus
    manifest_path: str = "package.json"


@dataclass(frozen=True)
class AnalysisResult:
    """Output of the pattern analyzer."""

    score: int
    issues: list[Issue] = field(default_factory=list)
    dependencies: list[DependencyFinding] = field(default_factory=list)
    files_to_remove: list[str] = field(default_factory=list)
    proprietary_cdns: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    detected_platform: str | None = None

    def summary(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ManifestEntry:
    """A single dependency entry in a manifest file."""

    name: str
    spec: str | None = None
    markers: str | None = None
    extras: list[str] | None = None
    source_type: str = "registry"  # registry, vcs, path, url, workspace
    section: str | None = None  # dependencies, devDependencies, ...
    line: int | None = None


@dataclass
class Manifest:
    """A parsed dependency manifest."""

    ecosystem: str  # python, node
    raw: str
    entries: list[ManifestEntry]


@dataclass(frozen=True)
class RewriteResult:
    """New content plus human-readable notes; no notes means unchanged."""

    content: str
    notes: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.notes)


@dataclass(frozen=True)
class CleaningOutcome:
    """Per-file result of the cleaning engine."""

    path: str
    final_content: str | bytes
    was_changed: bool
    change_notes: tuple[str, ...] = ()
    ai_changed: bool = False


@dataclass(frozen=True)
class CleaningStats:
    files_removed: int = 0
    files_changed_locally: int = 0
    files_changed_by_ai: int = 0
    dependencies_removed: int = 0
    polyfills_generated: int = 0
    cdn_urls_replaced: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class CleaningReport:
    """Cleaned file set plus per-file outcomes and counters."""

    files: ProjectSnapshot
    outcomes: tuple[CleaningOutcome, ...]
    stats: CleaningStats
    removed_paths: tuple[str, ...] = ()
    removed_dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class Polyfill:
    """Standalone replacement module for a removed platform hook."""

    source_symbol: str
    generated_path: str
    generated_content: str


@dataclass(frozen=True)
class RetrievalReport:
    snapshot: ProjectSnapshot
    skipped: tuple[str, ...] = ()
    batches: int = 0
    source_label: str = ""


@dataclass(frozen=True)
class LiberationRecord:
    """Append-only history entry written at the end of a successful run."""

    run_id: str
    owner_id: str
    project_name: str
    score_before: int
    score_after: int
    files_total: int
    created_at: str
    archive_ref: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping) -> "LiberationRecord":
        return cls(
            run_id=str(data["run_id"]),
            owner_id=str(data["owner_id"]),
            project_name=str(data["project_name"]),
            score_before=int(data["score_before"]),
            score_after=int(data["score_after"]),
            files_total=int(data["files_total"]),
            created_at=str(data["created_at"]),
            archive_ref=str(data["archive_ref"]),
        )


@dataclass(frozen=True)
class LiberationResult:
    """Success result of one run."""

    analysis: AnalysisResult
    stats: CleaningStats
    archive_ref: str
    score_after: int
    project_name: str
    skipped_files: tuple[str, ...] = ()
    removed_dependencies: tuple[str, ...] = ()
    record: LiberationRecord | None = None
