"""Tests for the pattern analyzer."""

from dataclasses import replace

import pytest

from liberation.analyzer import PatternAnalyzer
from liberation.config import LiberationConfig, SeverityWeights
from liberation.errors import AnalysisError
from liberation.models import DependencyStatus, ProjectSnapshot, Severity


class TestScenarios:
    """End-to-end detection scenarios."""

    def test_no_proprietary_signals(self, clean_project):
        """A clean project scores 100 with nothing to report."""
        result = PatternAnalyzer().analyze(clean_project)

        assert result.score == 100
        assert result.issues == []
        assert result.files_to_remove == []
        assert result.proprietary_cdns == []
        assert result.detected_platform is None

    def test_manifest_dependency_is_critical(self, example_config, sample_package_json):
        """A proprietary package in package.json is a critical issue."""
        snapshot = ProjectSnapshot.from_mapping({"package.json": sample_package_json})
        result = PatternAnalyzer(example_config).analyze(snapshot)

        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.severity is Severity.CRITICAL
        assert issue.file_path == "package.json"
        assert issue.platform == "Example"
        assert issue.line == 8
        statuses = {d.name: d.status for d in result.dependencies}
        assert statuses == {
            "proprietary-hook": DependencyStatus.INCOMPATIBLE,
            "react": DependencyStatus.COMPATIBLE,
        }
        assert result.score == 85

    def test_cdn_reference_in_markup_is_warning(self, example_config):
        """A script served from a proprietary host is a warning."""
        snapshot = ProjectSnapshot.from_mapping({
            "index.html": '<html><body><script src="https://proprietary-cdn.example/x.js"></script></body></html>',
        })
        result = PatternAnalyzer(example_config).analyze(snapshot)

        assert [i.severity for i in result.issues] == [Severity.WARNING]
        assert result.proprietary_cdns == ["https://proprietary-cdn.example/x.js"]
        assert result.detected_platform == "Example"

    def test_lovable_export(self, lovable_project):
        """A typical Lovable export triggers every detector."""
        result = PatternAnalyzer().analyze(lovable_project)

        rules = sorted(issue.rule for issue in result.issues)
        assert rules == sorted([
            "proprietary-dependency",
            "proprietary-import",
            "proprietary-import",
            "non-standard-plugin",
            "proprietary-cdn",
            "platform-tag",
            "platform-comment",
            "platform-data-attribute",
        ])
        assert result.files_to_remove == [".lovable/config.json"]
        assert result.detected_platform == "Lovable"
        assert result.summary() == {"info": 3, "warning": 2, "critical": 3}
        assert result.score == 100 - 3 * 15 - 2 * 5 - 3 * 1 - 10

    def test_ordinary_words_are_not_signatures(self):
        """Platform names inside everyday markup and attribute names are not issues."""
        snapshot = ProjectSnapshot.from_mapping({
            "index.html": (
                "<html><head>\n"
                '<meta name="description" content="A lightning bolt weather app" />\n'
                '<link rel="stylesheet" href="/css/cursor-trail.css" />\n'
                '<script src="/js/replit-badge-free.js"></script>\n'
                "</head><body>\n"
                '<div data-cursor="pointer" data-bolt-size="2">forecast</div>\n'
                "</body></html>\n"
            ),
            "src/Button.tsx": 'export const Button = () => <button data-lovely="yes" data-cursor="hand" />;\n',
        })
        result = PatternAnalyzer().analyze(snapshot)

        assert result.issues == []
        assert result.score == 100

    def test_configured_data_attribute(self, example_config):
        snapshot = ProjectSnapshot.from_mapping({
            "src/App.tsx": 'export const App = () => <main data-example-id="x" data-testid="app" />;\n',
        })
        result = PatternAnalyzer(example_config).analyze(snapshot)

        assert [issue.rule for issue in result.issues] == ["platform-data-attribute"]
        assert result.issues[0].line == 1
        assert result.issues[0].platform == "Example"

    def test_requirements_txt(self):
        snapshot = ProjectSnapshot.from_mapping({
            "requirements.txt": "flask==3.0.0\nReplit_AI==0.0.11\ngit+https://x.org/r.git#egg=tool\n",
        })
        result = PatternAnalyzer().analyze(snapshot)

        statuses = {d.name: d.status for d in result.dependencies}
        assert statuses["flask"] is DependencyStatus.COMPATIBLE
        assert statuses["Replit_AI"] is DependencyStatus.INCOMPATIBLE
        assert statuses["tool"] is DependencyStatus.UNKNOWN
        assert result.issues[0].line == 2


class TestProperties:
    """Determinism, monotonicity and bookkeeping."""

    def test_deterministic(self, lovable_project):
        analyzer = PatternAnalyzer()
        assert analyzer.analyze(lovable_project) == analyzer.analyze(lovable_project)

    def test_insertion_order_does_not_matter(self, lovable_project):
        reversed_snapshot = ProjectSnapshot(reversed(lovable_project.entries()))
        analyzer = PatternAnalyzer()
        assert analyzer.analyze(reversed_snapshot) == analyzer.analyze(lovable_project)

    def test_score_monotonic_when_signals_shrink(self, lovable_project):
        analyzer = PatternAnalyzer()
        full = analyzer.analyze(lovable_project)
        fewer = analyzer.analyze(lovable_project.without(["index.html", ".lovable/config.json"]))

        assert len(fewer.issues) < len(full.issues)
        assert fewer.score >= full.score

    def test_score_floors_at_zero(self, lovable_project):
        config = replace(LiberationConfig.default(), weights=SeverityWeights(critical=60))
        assert PatternAnalyzer(config).analyze(lovable_project).score == 0

    def test_issue_ids_unique(self):
        snapshot = ProjectSnapshot.from_mapping({
            "src/a.ts": 'const a = "https://lovable.dev/x"; const b = "https://lovable.dev/y";\n',
        })
        result = PatternAnalyzer().analyze(snapshot)
        ids = [issue.id for issue in result.issues]
        assert len(ids) == 2
        assert len(set(ids)) == 2

    def test_recommendations_capped_and_ordered(self, lovable_project):
        config = replace(LiberationConfig.default(), max_recommendations=2)
        result = PatternAnalyzer(config).analyze(lovable_project)

        assert len(result.recommendations) == 2
        critical = {i.suggestion for i in result.issues if i.severity is Severity.CRITICAL}
        assert set(result.recommendations) <= critical

    def test_binary_files_ignored(self):
        snapshot = ProjectSnapshot.from_mapping({"src/data.js": b"\xff\xfe lovable"})
        assert PatternAnalyzer().analyze(snapshot).score == 100

    def test_rejects_non_snapshot(self):
        with pytest.raises(AnalysisError):
            PatternAnalyzer().analyze({"a.ts": ""})
