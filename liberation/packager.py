"""Archive packaging: final files plus generated deployment artifacts."""

import asyncio
import io
import re
import uuid
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Protocol

from .config import LiberationConfig
from .errors import PackagingError
from .logging import get_logger
from .models import AnalysisResult, CleaningStats, Polyfill, ProjectSnapshot
from .patterns import env_names

logger = get_logger("packager")

DOCKERFILE = """\
# Stage 1: build
FROM node:20-alpine AS builder

WORKDIR /app

COPY package*.json ./
RUN npm ci

COPY . .
RUN npm run build

# Stage 2: static server
FROM nginx:alpine

COPY --from=builder /app/dist /usr/share/nginx/html
COPY nginx.conf /etc/nginx/conf.d/default.conf

EXPOSE 80

HEALTHCHECK --interval=30s --timeout=3s --start-period=5s --retries=3 \\
  CMD wget --no-verbose --tries=1 --spider http://localhost/ || exit 1

CMD ["nginx", "-g", "daemon off;"]
"""

NGINX_CONF = """\
server {{
    listen 80;
    server_name localhost;
    root /usr/share/nginx/html;
    index index.html;

    gzip on;
    gzip_min_length 1024;
    gzip_types text/plain text/css application/json application/javascript text/xml application/xml text/javascript image/svg+xml;

    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "strict-origin-when-cross-origin" always;

    location / {{
        try_files $uri $uri/ /index.html;
    }}

    location ~* \\.({extensions})$ {{
        expires 1y;
        add_header Cache-Control "public, immutable";
    }}
}}
"""

_ENV_DECLARATION = re.compile(r"^\s*(?:export\s+)?([A-Z_][A-Z0-9_]*)\s*=", re.MULTILINE)
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class ArchiveStore(Protocol):
    """Where finished archives live; references are opaque strings."""

    def put(self, data: bytes) -> str: ...

    def get(self, ref: str) -> bytes: ...


class LocalArchiveStore:
    """Stores archives as ``<uuid>.zip`` files in one directory."""

    _REF = re.compile(r"^[0-9a-f]{32}$")

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def put(self, data: bytes) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        ref = uuid.uuid4().hex
        (self.directory / f"{ref}.zip").write_bytes(data)
        return ref

    def get(self, ref: str) -> bytes:
        """Archive bytes for ``ref``; ``KeyError`` when it does not exist."""
        path = self.directory / f"{ref}.zip"
        if not self._REF.match(ref) or not path.is_file():
            raise KeyError(ref)
        return path.read_bytes()


def safe_project_name(name: str | None) -> str:
    cleaned = _UNSAFE_NAME.sub("-", name or "").strip("-.")
    return cleaned or "project"


def render_env_template(files: ProjectSnapshot) -> str:
    """Every environment variable the project reads or declares, one per line."""
    names: set[str] = set()
    for entry in files:
        if not entry.is_text:
            continue
        text = entry.text
        if entry.path.rsplit("/", 1)[-1].startswith(".env"):
            names.update(_ENV_DECLARATION.findall(text))
            continue
        names.update(env_names(text))

    lines = ["# Environment variables referenced by this project"]
    lines.extend(f"{name}=" for name in sorted(names))
    return "\n".join(lines) + "\n"


def render_nginx_conf(config: LiberationConfig) -> str:
    return NGINX_CONF.format(extensions="|".join(config.static_extensions))


def render_report(
    project_name: str,
    analysis: AnalysisResult,
    stats: CleaningStats,
    score_after: int,
    removed_dependencies: Iterable[str] = (),
    removed_paths: Iterable[str] = (),
    skipped: Iterable[str] = (),
    polyfills: Iterable[Polyfill] = (),
    generated_at: datetime | None = None,
) -> str:
    """Human-readable summary shipped inside the archive."""
    when = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")
    lines = [
        f"# Liberation report: {project_name}",
        "",
        f"Generated {when}.",
        "",
        "## Portability score",
        "",
        f"- Before: {analysis.score}/100",
        f"- After: {score_after}/100",
    ]
    if analysis.detected_platform:
        lines.append(f"- Detected platform: {analysis.detected_platform}")

    lines += [
        "",
        "## Cleaning",
        "",
        "| Counter | Value |",
        "|---|---|",
        f"| Files removed | {stats.files_removed} |",
        f"| Files changed locally | {stats.files_changed_locally} |",
        f"| Files changed by AI | {stats.files_changed_by_ai} |",
        f"| Dependencies removed | {stats.dependencies_removed} |",
        f"| Polyfills generated | {stats.polyfills_generated} |",
        f"| CDN URLs replaced | {stats.cdn_urls_replaced} |",
    ]

    sections = (
        ("Removed dependencies", [f"`{name}`" for name in removed_dependencies]),
        ("Removed files", [f"`{path}`" for path in removed_paths]),
        ("Generated polyfills", [f"`{p.generated_path}` ({p.source_symbol})" for p in polyfills]),
        ("Files that could not be retrieved", [f"`{path}`" for path in skipped]),
        ("Recommendations", list(analysis.recommendations)),
    )
    for title, items in sections:
        if not items:
            continue
        lines += ["", f"## {title}", ""]
        lines += [f"- {item}" for item in items]

    lines += [
        "",
        "## Deploy",
        "",
        "```bash",
        "docker build -t app .",
        "docker run -p 8080:80 app",
        "```",
        "",
    ]
    return "\n".join(lines)


class Packager:
    """Builds the downloadable archive and hands it to an ``ArchiveStore``."""

    def __init__(self, config: LiberationConfig, store: ArchiveStore):
        self.config = config
        self.store = store

    def artifacts(self, files: ProjectSnapshot, report: str) -> dict[str, str]:
        return {
            "Dockerfile": DOCKERFILE,
            "nginx.conf": render_nginx_conf(self.config),
            ".env.example": render_env_template(files),
            "LIBERATION_REPORT.md": report,
        }

    def build_archive(self, files: ProjectSnapshot, project_name: str, report: str) -> bytes:
        """ZIP bytes with every file under ``<project_name>/``.

        Generated artifacts replace project files at the same path.
        """
        root = safe_project_name(project_name)
        contents = files.as_dict()
        overridden = [path for path in self.artifacts(files, report) if path in contents]
        if overridden:
            logger.info("Generated artifacts replace %s", ", ".join(overridden))
        contents.update(self.artifacts(files, report))

        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for path in sorted(contents):
                    archive.writestr(f"{root}/{path}", contents[path])
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise PackagingError(f"Cannot build archive: {e}") from e
        return buffer.getvalue()

    async def package(
        self,
        files: ProjectSnapshot,
        *,
        project_name: str,
        analysis: AnalysisResult,
        stats: CleaningStats,
        score_after: int,
        removed_dependencies: Iterable[str] = (),
        removed_paths: Iterable[str] = (),
        skipped: Iterable[str] = (),
        polyfills: Iterable[Polyfill] = (),
    ) -> str:
        """Build, store and return the opaque archive reference.

        Raises:
            PackagingError: If the archive cannot be built or stored
        """
        report = render_report(
            project_name,
            analysis,
            stats,
            score_after,
            removed_dependencies=removed_dependencies,
            removed_paths=removed_paths,
            skipped=skipped,
            polyfills=polyfills,
        )
        data = self.build_archive(files, project_name, report)
        try:
            ref = await asyncio.to_thread(self.store.put, data)
        except OSError as e:
            raise PackagingError(f"Cannot store archive: {e}") from e
        logger.info("Stored archive %s (%d bytes)", ref, len(data))
        return ref
