"""Regular expressions shared by the analyzer, the rewriters and the packager.

All matchers are built from a ``LiberationConfig`` so that signature lists
stay swappable data.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from .config import LiberationConfig, PlatformSignature

# import x from "spec"; import "spec"; export * from "spec"
IMPORT_STATEMENT = re.compile(
    r"""^[ \t]*(?:import|export)\s+(?:type\s+)?(?:[\w*${}\s,]+?\s+from\s+)?"""
    r"""(['"])(?P<spec>[^'"\n]+)\1[ \t]*;?[ \t]*(?:\r?\n)?""",
    re.MULTILINE,
)
# const x = require("spec"); require("spec")
REQUIRE_STATEMENT = re.compile(
    r"""^[ \t]*(?:(?:const|let|var)\s+[\w{}\s,:]+?\s*=\s*)?"""
    r"""require\(\s*(['"])(?P<spec>[^'"\n]+)\1\s*\)[ \t]*;?[ \t]*(?:\r?\n)?""",
    re.MULTILINE,
)
DYNAMIC_IMPORT = re.compile(r"""\bimport\(\s*(['"])(?P<spec>[^'"\n]+)\1\s*\)""")

URL = re.compile(r"""https?://[^\s'"`<>()\\]+""")

# import name from "mod" / import { a, b as c } from "mod"
IMPORT_BINDINGS = re.compile(
    r"""^[ \t]*import\s+(?P<bindings>[\w$]+|\{[^}]*\}|[\w$]+\s*,\s*\{[^}]*\})\s+from\s+"""
    r"""(['"])(?P<spec>[^'"\n]+)\2""",
    re.MULTILINE,
)


def whole_line_or_inline(tag: str) -> re.Pattern:
    """Match ``tag`` together with its line when nothing else is on it."""
    return re.compile(
        rf"^[ \t]*{tag}[ \t]*(?:\r?\n|\Z)|{tag}",
        re.IGNORECASE | re.MULTILINE,
    )


SCRIPT_TAG = whole_line_or_inline(r"<script\b[^>]*>[\s\S]*?</script\s*>")
SCRIPT_PARTS = re.compile(r"<script\b([^>]*)>([\s\S]*?)</script\s*>", re.IGNORECASE)
LINK_TAG = whole_line_or_inline(r"<link\b[^>]*>")
META_TAG = whole_line_or_inline(r"<meta\b[^>]*>")

# Any data-* attribute; ownership is decided by the configured names.
DATA_ATTRIBUTE = re.compile(
    r"""\s+(?P<attr>data-[\w-]+)(?:=(?:"[^"]*"|'[^']*'|\{[^}]*\}))?(?=[\s/>])""",
    re.IGNORECASE,
)
# name="..." / content="..." inside a markup tag
TAG_NAME_VALUE = re.compile(
    r"""(?<![\w-])(?:name|content)\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE
)

ENV_REFERENCES = (
    re.compile(r"\bimport\.meta\.env\.([A-Z_][A-Z0-9_]*)"),
    re.compile(r"""\bimport\.meta\.env\[\s*['"]([A-Z_][A-Z0-9_]*)['"]\s*\]"""),
    re.compile(r"\bprocess\.env\.([A-Z_][A-Z0-9_]*)"),
    re.compile(r"""\bprocess\.env\[\s*['"]([A-Z_][A-Z0-9_]*)['"]\s*\]"""),
    re.compile(r"""\bDeno\.env\.get\(\s*['"]([A-Z_][A-Z0-9_]*)['"]\s*\)"""),
    re.compile(r"""\bos\.environ\[\s*['"]([A-Z_][A-Z0-9_]*)['"]\s*\]"""),
    re.compile(r"""\bos\.environ\.get\(\s*['"]([A-Z_][A-Z0-9_]*)['"]"""),
    re.compile(r"""\bos\.getenv\(\s*['"]([A-Z_][A-Z0-9_]*)['"]"""),
)

# const { A, B: b, C = "x" } = import.meta.env
ENV_DESTRUCTURING = re.compile(
    r"""\b(?:const|let|var)\s*\{(?P<names>[^{}]*)\}\s*=\s*"""
    r"""(?:(?:import\.meta\.env|process\.env)(?![\w.\[])|Deno\.env\.toObject\(\s*\))"""
)
_ENV_NAME = re.compile(r"[A-Z_][A-Z0-9_]*")


def env_names(text: str) -> set[str]:
    """Environment variable names a source file reads."""
    names: set[str] = set()
    for pattern in ENV_REFERENCES:
        names.update(pattern.findall(text))
    for m in ENV_DESTRUCTURING.finditer(text):
        for part in m.group("names").split(","):
            name = re.split(r"[:=]", part, maxsplit=1)[0].strip().strip("\"'")
            if _ENV_NAME.fullmatch(name):
                names.add(name)
    return names


def line_of(text: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return text.count("\n", 0, offset) + 1


def url_host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def parse_bindings(bindings: str) -> list[str]:
    """Local identifiers introduced by an import clause."""
    names = []
    for part in re.split(r"[{},]", bindings):
        part = part.strip()
        if not part:
            continue
        if " as " in part:
            part = part.split(" as ")[-1].strip()
        if re.fullmatch(r"[\w$]+", part) and part != "type":
            names.append(part)
    return names


@dataclass(frozen=True)
class Match:
    """A signature occurrence inside one file."""

    kind: str  # import, cdn, data_attribute, comment_marker, meta_tag
    text: str
    line: int
    platform: PlatformSignature


class SignatureMatcher:
    """Finds proprietary-platform signatures in text."""

    def __init__(self, config: LiberationConfig):
        self.config = config
        keyword_owner: dict[str, PlatformSignature] = {}
        for platform in config.platforms:
            for word in platform.keywords:
                keyword_owner.setdefault(word.lower(), platform)
        self._keyword_owner = keyword_owner

        # Whole attribute values that name a platform. Short keywords such as
        # "lov" are too ambiguous to identify a tag alone.
        value_owner: dict[str, PlatformSignature] = {}
        for platform in config.platforms:
            value_owner.setdefault(platform.name.lower(), platform)
            for word in platform.keywords:
                if len(word) >= 4:
                    value_owner.setdefault(word.lower(), platform)
        self._value_owner = value_owner

        words = sorted(keyword_owner, key=len, reverse=True)
        if words:
            alternation = "|".join(re.escape(word) for word in words)
            comment = (
                rf"""(?://[ \t]*@(?P<kw>{alternation})\b[^\n]*"""
                rf"""|/\*\s*@(?P<kw2>{alternation})\b[\s\S]*?\*/"""
                rf"""|<!--\s*@(?P<kw3>{alternation})\b[\s\S]*?-->)"""
            )
            # A marker alone on its line takes the line with it.
            self.comment_marker = re.compile(
                rf"""^[ \t]*{comment}[ \t]*(?:\r?\n|\Z)|[ \t]*{comment.replace("?P<kw", "?P<in")}""",
                re.IGNORECASE | re.MULTILINE,
            )
        else:
            self.comment_marker = None

    def platform_for_keyword(self, keyword: str) -> PlatformSignature:
        return self._keyword_owner[keyword.lower()]

    def platform_for_attribute(self, m: re.Match) -> PlatformSignature | None:
        """Owner of a ``DATA_ATTRIBUTE`` match, if any."""
        return self.config.platform_for_attribute(m.group("attr"))

    def tag_names_platform(self, tag: str) -> PlatformSignature | None:
        """Platform named by a markup tag, through a CDN host or a name/content value."""
        for url in URL.findall(tag):
            platform = self.config.platform_for_host(url_host(url))
            if platform:
                return platform
        for m in TAG_NAME_VALUE.finditer(tag):
            value = (m.group(1) if m.group(1) is not None else m.group(2)).strip().lower()
            if value in self._value_owner:
                return self._value_owner[value]
        return None

    def find_imports(self, text: str) -> list[Match]:
        found: dict[int, Match] = {}
        for pattern in (IMPORT_STATEMENT, REQUIRE_STATEMENT, DYNAMIC_IMPORT):
            for m in pattern.finditer(text):
                spec = m.group("spec")
                platform = self.config.platform_for_specifier(spec)
                if platform is None:
                    continue
                offset = m.start("spec")
                found.setdefault(offset, Match("import", spec, line_of(text, offset), platform))
        return [found[offset] for offset in sorted(found)]

    def find_cdn_urls(self, text: str) -> list[Match]:
        matches = []
        for m in URL.finditer(text):
            url = m.group(0).rstrip(".,;")
            platform = self.config.platform_for_host(url_host(url))
            if platform:
                matches.append(Match("cdn", url, line_of(text, m.start()), platform))
        return matches

    def find_data_attributes(self, text: str) -> list[Match]:
        matches = []
        for m in DATA_ATTRIBUTE.finditer(text):
            platform = self.platform_for_attribute(m)
            if platform:
                matches.append(
                    Match("data_attribute", m.group(0).strip(), line_of(text, m.start("attr")), platform)
                )
        return matches

    def find_comment_markers(self, text: str) -> list[Match]:
        if self.comment_marker is None:
            return []
        matches = []
        for m in self.comment_marker.finditer(text):
            keyword = next(
                m.group(name)
                for name in ("kw", "kw2", "kw3", "in", "in2", "in3")
                if m.group(name)
            )
            body = m.group(0).strip()
            offset = m.start() + len(m.group(0)) - len(m.group(0).lstrip())
            matches.append(
                Match("comment_marker", body, line_of(text, offset), self.platform_for_keyword(keyword))
            )
        return matches
