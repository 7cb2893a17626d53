"""Pattern analyzer: detects proprietary-platform coupling and scores portability."""

import re
from collections import Counter

from .config import LiberationConfig
from .detect import FileRole, basename, identify_role
from .errors import AnalysisError
from .logging import get_logger
from .models import (
    AnalysisResult,
    DependencyFinding,
    DependencyStatus,
    Issue,
    Manifest,
    ProjectSnapshot,
    Severity,
)
from .parse_node import parse_package_json
from .parse_python import normalize_name, parse_requirements
from .patterns import (
    IMPORT_BINDINGS,
    LINK_TAG,
    META_TAG,
    SCRIPT_PARTS,
    SCRIPT_TAG,
    URL,
    SignatureMatcher,
    line_of,
    parse_bindings,
    url_host,
)

logger = get_logger("analyzer")

_CODE_ROLES = (FileRole.BUNDLER_CONFIG, FileRole.ENTRY_HTML, FileRole.SOURCE)


class PatternAnalyzer:
    """Pure, deterministic analysis of a project snapshot.

    Files are visited in sorted path order and no I/O happens, so two runs
    over equal snapshots produce equal results.
    """

    def __init__(self, config: LiberationConfig | None = None):
        self.config = config or LiberationConfig.default()
        self.matcher = SignatureMatcher(self.config)

    def analyze(self, snapshot: ProjectSnapshot) -> AnalysisResult:
        """Run every detector over the snapshot.

        Args:
            snapshot: Files to inspect

        Returns:
            Issues, dependency verdicts, removable files and the score
        """
        if not isinstance(snapshot, ProjectSnapshot):
            raise AnalysisError(f"Expected a ProjectSnapshot, got {type(snapshot).__name__}")

        issues: list[Issue] = []
        dependencies: list[DependencyFinding] = []
        files_to_remove: list[str] = []
        cdns: list[str] = []
        removal_platforms: list[str] = []
        used_ids: set[str] = set()

        def add(rule: str, severity: Severity, path: str, description: str, *,
                platform: str | None, line: int | None, suggestion: str | None) -> None:
            base = f"{rule}@{path}:{line if line is not None else 0}"
            issue_id, n = base, 1
            while issue_id in used_ids:
                n += 1
                issue_id = f"{base}#{n}"
            used_ids.add(issue_id)
            issues.append(
                Issue(
                    id=issue_id,
                    severity=severity,
                    file_path=path,
                    description=description,
                    rule=rule,
                    platform=platform,
                    line=line,
                    suggestion=suggestion,
                )
            )

        for path in snapshot.sorted_paths():
            if not path or path.startswith("/"):
                raise AnalysisError(f"Invalid snapshot path: {path!r}")

            platform = self.config.platform_for_file(path)
            if platform is not None:
                files_to_remove.append(path)
                removal_platforms.append(platform.name)
                continue

            entry = snapshot[path]
            if not entry.is_text:
                continue
            text = entry.text
            role = identify_role(path)

            if role is FileRole.MANIFEST:
                self._check_manifest(path, text, dependencies, add)
            elif role in _CODE_ROLES:
                self._check_code(path, text, role, cdns, add)

        score = self._score(issues, files_to_remove)
        result = AnalysisResult(
            score=score,
            issues=issues,
            dependencies=dependencies,
            files_to_remove=files_to_remove,
            proprietary_cdns=cdns,
            recommendations=self._recommendations(issues),
            detected_platform=self._detected_platform(issues, removal_platforms),
        )
        logger.debug(
            "Analyzed %d files: score %d, %d issues, %d files to remove",
            len(snapshot), score, len(issues), len(files_to_remove),
        )
        return result

    # -- detectors ---------------------------------------------------------

    def _check_manifest(self, path, text, dependencies, add) -> None:
        manifest_name = basename(path)
        try:
            if manifest_name.lower() == "package.json":
                manifest = parse_package_json(text)
            else:
                manifest = parse_requirements(text)
        except ValueError as e:
            logger.warning("Skipping unreadable manifest %s: %s", path, e)
            return

        for entry in manifest.entries:
            platform = self._package_platform(manifest, entry.name)
            if platform is not None:
                status = DependencyStatus.INCOMPATIBLE
            elif entry.source_type != "registry":
                status = DependencyStatus.UNKNOWN
            else:
                status = DependencyStatus.COMPATIBLE

            dependencies.append(
                DependencyFinding(
                    name=entry.name,
                    declared_version=entry.spec,
                    status=status,
                    manifest_path=path,
                )
            )
            if platform is None:
                continue
            add(
                "proprietary-dependency",
                Severity.CRITICAL,
                path,
                f"Dependency {entry.name} belongs to {platform.name}",
                platform=platform.name,
                line=entry.line or _json_key_line(text, entry.name),
                suggestion=f"Remove {entry.name} from {manifest_name}",
            )

    def _package_platform(self, manifest: Manifest, name: str):
        if manifest.ecosystem == "python":
            return self.config.platform_for_package(normalize_name(name))
        return self.config.platform_for_package(name)

    def _check_code(self, path, text, role, cdns, add) -> None:
        matcher = self.matcher
        rewrites = self.config.import_rewrites

        for match in matcher.find_imports(text):
            target = rewrites.get(match.text)
            add(
                "proprietary-import",
                Severity.CRITICAL,
                path,
                f"Import of {match.text} ({match.platform.name} SDK)",
                platform=match.platform.name,
                line=match.line,
                suggestion=(
                    f"Import {target} instead of {match.text}"
                    if target
                    else f"Remove imports of {match.text}"
                ),
            )

        for match in matcher.find_cdn_urls(text):
            host = url_host(match.text)
            if match.text not in cdns:
                cdns.append(match.text)
            add(
                "proprietary-cdn",
                Severity.WARNING,
                path,
                f"Asset served from {match.platform.name} host {host}",
                platform=match.platform.name,
                line=match.line,
                suggestion=f"Self-host or remove assets loaded from {host}",
            )

        if role is FileRole.BUNDLER_CONFIG:
            self._check_plugins(path, text, add)
        if role is FileRole.ENTRY_HTML:
            self._check_tags(path, text, add)

        for match in matcher.find_data_attributes(text):
            add(
                "platform-data-attribute",
                Severity.INFO,
                path,
                f"Platform data attribute {match.text.split('=', 1)[0]}",
                platform=match.platform.name,
                line=match.line,
                suggestion="Strip platform tagging data attributes",
            )
        for match in matcher.find_comment_markers(text):
            add(
                "platform-comment",
                Severity.INFO,
                path,
                "Platform comment marker",
                platform=match.platform.name,
                line=match.line,
                suggestion="Delete platform comment markers",
            )

    def _check_plugins(self, path, text, add) -> None:
        for m in IMPORT_BINDINGS.finditer(text):
            spec = m.group("spec")
            platform = self.config.platform_for_specifier(spec) or next(
                (p for p in self.config.platforms if spec in p.plugin_modules), None
            )
            if platform is None:
                continue
            for name in parse_bindings(m.group("bindings")):
                for call in re.finditer(rf"(?<![\w$.]){re.escape(name)}\s*\(", text):
                    add(
                        "non-standard-plugin",
                        Severity.WARNING,
                        path,
                        f"Non-standard build plugin {name}() from {spec}",
                        platform=platform.name,
                        line=line_of(text, call.start()),
                        suggestion=f"Drop the {name}() plugin from the build configuration",
                    )

    def _check_tags(self, path, text, add) -> None:
        """Tags naming the platform without a proprietary URL (those are CDN issues)."""
        for pattern in (SCRIPT_TAG, LINK_TAG, META_TAG):
            for m in pattern.finditer(text):
                tag = m.group(0)
                inspected = SCRIPT_PARTS.search(tag).group(1) if pattern is SCRIPT_TAG else tag
                if any(self.config.platform_for_host(url_host(url)) for url in URL.findall(tag)):
                    continue
                platform = self.matcher.tag_names_platform(inspected)
                if platform is None:
                    continue
                add(
                    "platform-tag",
                    Severity.INFO,
                    path,
                    f"Markup tag naming {platform.name}",
                    platform=platform.name,
                    line=line_of(text, m.start() + len(tag) - len(tag.lstrip())),
                    suggestion="Remove platform meta and script tags from HTML entry points",
                )

    # -- scoring -----------------------------------------------------------

    def _score(self, issues: list[Issue], files_to_remove: list[str]) -> int:
        weights = self.config.weights
        penalty = sum(weights.for_severity(issue.severity) for issue in issues)
        penalty += weights.removed_file * len(files_to_remove)
        return max(0, 100 - penalty)

    def _recommendations(self, issues: list[Issue]) -> list[str]:
        ordered = sorted(
            issues,
            key=lambda issue: (-issue.severity.rank, issue.file_path, issue.line or 0),
        )
        recommendations: list[str] = []
        for issue in ordered:
            if not issue.suggestion or issue.suggestion in recommendations:
                continue
            recommendations.append(issue.suggestion)
            if len(recommendations) >= self.config.max_recommendations:
                break
        return recommendations

    @staticmethod
    def _detected_platform(issues: list[Issue], removal_platforms: list[str]) -> str | None:
        counts = Counter(issue.platform for issue in issues if issue.platform)
        if not counts:
            counts = Counter(removal_platforms)
        if not counts:
            return None
        return min(counts, key=lambda name: (-counts[name], name))


def _json_key_line(text: str, key: str) -> int | None:
    needle = f'"{key}"'
    offset = text.find(needle)
    return line_of(text, offset) if offset >= 0 else None
