"""Deterministic, rule-based rewrites applied per file role.

Every rewrite returns a ``RewriteResult``. When no rule fires the original
text comes back untouched, which makes a second pass a no-op.
"""

import json
import re
from typing import Callable

from .config import LiberationConfig
from .detect import FileRole, basename, identify_role
from .models import RewriteResult
from .parse_node import DEPENDENCY_SECTIONS, load_package_json
from .parse_python import drop_requirements, normalize_name, parse_requirements
from .patterns import (
    DATA_ATTRIBUTE,
    IMPORT_BINDINGS,
    IMPORT_STATEMENT,
    LINK_TAG,
    META_TAG,
    REQUIRE_STATEMENT,
    SCRIPT_PARTS,
    SCRIPT_TAG,
    SignatureMatcher,
    parse_bindings,
)

DEPENDENCY_NOTE = "Dependency removed: "
SCRIPT_NOTE = "Script removed: "

_BLANK_RUN = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")
# Words of a shell command, split on whitespace and the usual operators.
_COMMAND_TOKEN = re.compile(r"[^\s;&|()]+")


def removed_dependencies(notes: tuple[str, ...]) -> list[str]:
    """Dependency names recorded in rewrite notes."""
    return [note[len(DEPENDENCY_NOTE):] for note in notes if note.startswith(DEPENDENCY_NOTE)]


class Rewriter:
    """Deterministic tier of the cleaning engine."""

    def __init__(self, config: LiberationConfig, matcher: SignatureMatcher | None = None):
        self.config = config
        self.matcher = matcher or SignatureMatcher(config)
        self._table: dict[FileRole, Callable[[str, str], RewriteResult]] = {
            FileRole.MANIFEST: self.rewrite_manifest,
            FileRole.BUNDLER_CONFIG: self.rewrite_bundler_config,
            FileRole.ENTRY_HTML: self.rewrite_entry_html,
            FileRole.SOURCE: self.rewrite_source,
        }

    def rewrite(self, path: str, content: str) -> RewriteResult:
        """Apply the rewrite for the file's role; other roles pass through."""
        handler = self._table.get(identify_role(path))
        if handler is None:
            return RewriteResult(content)
        return handler(path, content)

    # -- manifests ---------------------------------------------------------

    def rewrite_manifest(self, path: str, content: str) -> RewriteResult:
        if basename(path).lower() == "package.json":
            return self._rewrite_package_json(content)
        return self._rewrite_requirements(content)

    def _rewrite_package_json(self, content: str) -> RewriteResult:
        try:
            data = load_package_json(content)
        except ValueError:
            return RewriteResult(content)

        notes: list[str] = []
        for section in DEPENDENCY_SECTIONS:
            deps = data.get(section)
            if not isinstance(deps, dict):
                continue
            for name in list(deps):
                if self.config.platform_for_package(name) is None:
                    continue
                del deps[name]
                note = DEPENDENCY_NOTE + name
                if note not in notes:
                    notes.append(note)

        scripts = data.get("scripts")
        if isinstance(scripts, dict):
            for key in list(scripts):
                command = scripts[key]
                if isinstance(command, str) and self.script_runs_platform_tool(command):
                    del scripts[key]
                    notes.append(SCRIPT_NOTE + key)

        if not notes:
            return RewriteResult(content)

        rendered = json.dumps(data, indent=2, ensure_ascii=False)
        if content.endswith("\n"):
            rendered += "\n"
        return RewriteResult(rendered, tuple(notes))

    def script_runs_platform_tool(self, command: str) -> bool:
        """Whether a package.json script invokes a platform package or plugin."""
        for token in _COMMAND_TOKEN.findall(command):
            name = token.strip("\"'")
            if name.startswith("@") and name.count("@") > 1:
                name = name.rsplit("@", 1)[0]
            elif not name.startswith("@"):
                name = name.split("@", 1)[0]
            if not name:
                continue
            if self.config.platform_for_package(name) is not None:
                return True
            if any(name in p.plugin_modules for p in self.config.platforms):
                return True
        return False

    def _rewrite_requirements(self, content: str) -> RewriteResult:
        manifest = parse_requirements(content)
        doomed = {
            entry.name
            for entry in manifest.entries
            if self.config.platform_for_package(normalize_name(entry.name))
        }
        if not doomed:
            return RewriteResult(content)
        new_content, removed = drop_requirements(content, doomed)
        return RewriteResult(new_content, tuple(DEPENDENCY_NOTE + name for name in removed))

    # -- bundler configs ---------------------------------------------------

    def _proprietary_module(self, specifier: str) -> bool:
        if self.config.platform_for_specifier(specifier) is not None:
            return True
        return any(specifier in p.plugin_modules for p in self.config.platforms)

    def rewrite_bundler_config(self, path: str, content: str) -> RewriteResult:
        notes: list[str] = []
        plugins: list[str] = []
        for m in IMPORT_BINDINGS.finditer(content):
            if self._proprietary_module(m.group("spec")):
                plugins.extend(parse_bindings(m.group("bindings")))

        def drop_import(m: re.Match) -> str:
            spec = m.group("spec")
            if not self._proprietary_module(spec):
                return m.group(0)
            notes.append(f"Import removed: {spec}")
            return ""

        text = IMPORT_STATEMENT.sub(drop_import, content)
        text = REQUIRE_STATEMENT.sub(drop_import, text)

        for name in plugins:
            call = (
                rf"(?:[\w.]+\s*===?\s*['\"]\w+['\"]\s*&&\s*)?"
                rf"(?<![\w$.]){re.escape(name)}\(\s*[^()]*\)[ \t]*,?"
            )
            registration = re.compile(rf"^[ \t]*{call}[ \t]*(?:\r?\n|\Z)|[ \t]*{call}", re.MULTILINE)
            text, count = registration.subn("", text)
            if count:
                notes.append(f"Plugin removed: {name}")

        return self._finish(content, text, notes)

    # -- markup ------------------------------------------------------------

    def rewrite_entry_html(self, path: str, content: str) -> RewriteResult:
        notes: list[str] = []
        matcher = self.matcher

        def drop_script(m: re.Match) -> str:
            opening, body = SCRIPT_PARTS.search(m.group(0)).groups()
            platform = matcher.tag_names_platform(opening)
            if platform is None and matcher.find_cdn_urls(body):
                platform = matcher.find_cdn_urls(body)[0].platform
            if platform is None:
                return m.group(0)
            notes.append(f"Script tag removed: {platform.name}")
            return ""

        def drop_tag(kind: str) -> Callable[[re.Match], str]:
            def drop(m: re.Match) -> str:
                platform = matcher.tag_names_platform(m.group(0))
                if platform is None:
                    return m.group(0)
                notes.append(f"{kind} tag removed: {platform.name}")
                return ""

            return drop

        text = SCRIPT_TAG.sub(drop_script, content)
        text = LINK_TAG.sub(drop_tag("Link"), text)
        text = META_TAG.sub(drop_tag("Meta"), text)
        text = self._drop_markers(text, notes)
        return self._finish(content, text, notes)

    # -- source ------------------------------------------------------------

    def rewrite_source(self, path: str, content: str) -> RewriteResult:
        notes: list[str] = []
        rewrites = self.config.import_rewrites

        def fix_import(m: re.Match) -> str:
            spec = m.group("spec")
            if self.config.platform_for_specifier(spec) is None:
                return m.group(0)
            if spec in rewrites:
                target = rewrites[spec]
                notes.append(f"Import rewritten: {spec} -> {target}")
                start, end = m.span("spec")
                whole = m.group(0)
                offset = m.start()
                return whole[: start - offset] + target + whole[end - offset:]
            notes.append(f"Import removed: {spec}")
            return ""

        text = IMPORT_STATEMENT.sub(fix_import, content)
        text = REQUIRE_STATEMENT.sub(fix_import, text)
        text = self._drop_markers(text, notes)
        return self._finish(content, text, notes)

    # -- helpers -----------------------------------------------------------

    def _drop_markers(self, text: str, notes: list[str]) -> str:
        matcher = self.matcher
        if matcher.comment_marker is not None:
            text, count = matcher.comment_marker.subn("", text)
            if count:
                notes.append(f"Comment markers removed: {count}")
        seen: list[str] = []

        def drop_attribute(m: re.Match) -> str:
            if matcher.platform_for_attribute(m) is None:
                return m.group(0)
            name = m.group("attr")
            if name not in seen:
                seen.append(name)
            return ""

        text = DATA_ATTRIBUTE.sub(drop_attribute, text)
        notes.extend(f"Data attribute removed: {name}" for name in seen)
        return text

    @staticmethod
    def _finish(original: str, text: str, notes: list[str]) -> RewriteResult:
        if not notes:
            return RewriteResult(original)
        text = _BLANK_RUN.sub("\n\n", text)
        return RewriteResult(text, tuple(notes))


def rewrite_file(path: str, content: str, config: LiberationConfig) -> RewriteResult:
    """Convenience wrapper around ``Rewriter.rewrite``."""
    return Rewriter(config).rewrite(path, content)


def count_cdn_urls(content: str, matcher: SignatureMatcher) -> int:
    return len(matcher.find_cdn_urls(content))

