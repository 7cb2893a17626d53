"""Source retrieval from GitHub or an uploaded ZIP archive."""

import asyncio
import base64
import io
import re
import zipfile
import zlib
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import quote

import httpx

from .config import LiberationConfig
from .detect import is_relevant_path
from .errors import FatalRetrievalError
from .logging import get_logger
from .models import FileEntry, ProjectSnapshot, RetrievalReport

logger = get_logger("retriever")

ProgressHook = Callable[[int, int], None]

_GITHUB_URL = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>[^/\s]+)/(?P<repo>[^/\s#?]+)"
    r"(?:/tree/(?P<ref>[^\s#?]+))?/?(?:[#?].*)?$"
)
_SLUG = re.compile(r"^(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)$")


@dataclass(frozen=True)
class RepositoryRef:
    owner: str
    repo: str
    ref: str = "main"

    @property
    def label(self) -> str:
        return f"{self.owner}/{self.repo}@{self.ref}"


def parse_repository(source: str, ref: str | None = None) -> RepositoryRef:
    """Parse a GitHub URL or ``owner/repo`` slug.

    Args:
        source: ``https://github.com/o/r``, ``github.com/o/r/tree/<ref>`` or ``o/r``
        ref: Branch, tag or commit overriding the one in the URL

    Returns:
        The repository reference

    Raises:
        FatalRetrievalError: If the source is not a recognizable repository
    """
    text = source.strip()
    match = _GITHUB_URL.match(text) or _SLUG.match(text)
    if not match:
        raise FatalRetrievalError(f"Not a GitHub repository: {source}")

    repo = match.group("repo")
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    url_ref = match.groupdict().get("ref")
    return RepositoryRef(
        owner=match.group("owner"),
        repo=repo,
        ref=ref or (url_ref.rstrip("/") if url_ref else "main"),
    )


def looks_like_repository(source: str) -> bool:
    text = source.strip()
    return bool(_GITHUB_URL.match(text) or _SLUG.match(text))


def _decode(data: bytes) -> str | bytes:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data


class GitHubRetriever:
    """Fetches a repository tree through the GitHub REST API."""

    def __init__(
        self,
        config: LiberationConfig,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the retriever.

        Args:
            config: Supplies API base, token, batch size and retry policy
            client: Optional pre-built HTTP client (tests inject a mock transport)
            sleep: Coroutine used between retry attempts
        """
        self.config = config
        self.settings = config.retrieval
        self._client = client
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "liberator",
        }
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        return headers

    async def fetch(
        self, repo: RepositoryRef, on_progress: ProgressHook | None = None
    ) -> RetrievalReport:
        """Retrieve every relevant file of ``repo``.

        Files that cannot be obtained after all attempts are listed in
        ``RetrievalReport.skipped``; only a tree failure is fatal.
        """
        if self._client is not None:
            return await self._fetch_with(self._client, repo, on_progress)
        async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
            return await self._fetch_with(client, repo, on_progress)

    async def _fetch_with(
        self, client: httpx.AsyncClient, repo: RepositoryRef, on_progress: ProgressHook | None
    ) -> RetrievalReport:
        items = await self._list_tree(client, repo)
        total = len(items)
        logger.info("Fetching %d files from %s", total, repo.label)

        files: list[FileEntry] = []
        skipped: list[str] = []
        batches = 0
        size = max(1, self.settings.batch_size)
        for start in range(0, total, size):
            batch = items[start : start + size]
            results = await asyncio.gather(
                *(self._fetch_file_safe(client, repo, item) for item in batch)
            )
            batches += 1
            for item, content in zip(batch, results):
                if content is None:
                    skipped.append(item["path"])
                else:
                    files.append(FileEntry(item["path"], content))
            if on_progress:
                on_progress(min(start + size, total), total)

        if skipped:
            logger.warning("Skipped %d unreadable files: %s", len(skipped), ", ".join(skipped))
        return RetrievalReport(
            snapshot=ProjectSnapshot(files),
            skipped=tuple(skipped),
            batches=batches,
            source_label=repo.label,
        )

    async def _list_tree(self, client: httpx.AsyncClient, repo: RepositoryRef) -> list[dict]:
        url = (
            f"{self.settings.api_base}/repos/{repo.owner}/{repo.repo}"
            f"/git/trees/{quote(repo.ref, safe='')}"
        )
        try:
            response = await client.get(url, params={"recursive": "1"}, headers=self._headers())
        except httpx.HTTPError as e:
            raise FatalRetrievalError(f"Cannot reach {repo.label}: {e}") from e

        if response.status_code == 404:
            raise FatalRetrievalError(f"Repository or ref not found: {repo.label}")
        if response.status_code >= 400:
            raise FatalRetrievalError(
                f"Tree request for {repo.label} failed with HTTP {response.status_code}"
            )
        try:
            data = response.json()
            tree = data["tree"]
        except (ValueError, KeyError, TypeError) as e:
            raise FatalRetrievalError(f"Malformed tree for {repo.label}") from e
        if not isinstance(tree, list):
            raise FatalRetrievalError(f"Malformed tree for {repo.label}")
        if data.get("truncated"):
            logger.warning("Tree for %s was truncated by the API", repo.label)

        return [
            item
            for item in tree
            if isinstance(item, dict)
            and item.get("type") == "blob"
            and isinstance(item.get("path"), str)
            and is_relevant_path(item["path"], self.config)
        ]

    async def _fetch_file_safe(
        self, client: httpx.AsyncClient, repo: RepositoryRef, item: dict
    ) -> str | bytes | None:
        path = item["path"]
        attempts = max(1, self.settings.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await self._fetch_file(client, repo, item)
            except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
                if attempt == attempts:
                    logger.warning("Giving up on %s after %d attempts: %s", path, attempt, e)
                    return None
                logger.warning("Attempt %d for %s failed: %s", attempt, path, e)
                await self._sleep(attempt * self.settings.base_delay)
        return None

    async def _fetch_file(
        self, client: httpx.AsyncClient, repo: RepositoryRef, item: dict
    ) -> str | bytes:
        base = f"{self.settings.api_base}/repos/{repo.owner}/{repo.repo}"
        response = await client.get(
            f"{base}/contents/{quote(item['path'])}",
            params={"ref": repo.ref},
            headers=self._headers(),
        )
        if response.status_code != 403:
            response.raise_for_status()
            data = response.json()
            # Large files come back without inline content.
            if (
                isinstance(data, dict)
                and data.get("encoding") == "base64"
                and isinstance(data.get("content"), str)
            ):
                return _decode(base64.b64decode(data["content"]))

        return await self._fetch_blob(client, base, item)

    async def _fetch_blob(self, client: httpx.AsyncClient, base: str, item: dict) -> str | bytes:
        sha = item.get("sha")
        if not sha:
            raise ValueError(f"No blob sha for {item['path']}")
        response = await client.get(f"{base}/git/blobs/{sha}", headers=self._headers())
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise ValueError(f"Malformed blob reply for {item['path']}")
        if data.get("encoding") != "base64":
            raise ValueError(f"Unsupported blob encoding for {item['path']}")
        return _decode(base64.b64decode(data["content"]))


def extract_archive(
    data: bytes, name: str = "upload.zip", config: LiberationConfig | None = None
) -> RetrievalReport:
    """Build a snapshot from ZIP bytes.

    A single folder shared by every entry is stripped, excluded directories
    and unsafe paths are dropped, UTF-8 content becomes text.

    Raises:
        FatalRetrievalError: If the archive cannot be read
    """
    config = config or LiberationConfig.default()
    excluded_dirs = set(config.retrieval.excluded_dirs) | {"__MACOSX"}
    excluded_files = set(config.retrieval.excluded_files)

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            members: list[tuple[list[str], zipfile.ZipInfo]] = []
            for info in archive.infolist():
                if info.is_dir():
                    continue
                path = info.filename.replace("\\", "/")
                parts = [part for part in path.split("/") if part not in ("", ".")]
                if not parts or path.startswith("/") or ".." in parts or ":" in parts[0]:
                    logger.warning("Ignoring unsafe archive entry %s", info.filename)
                    continue
                members.append((parts, info))

            tops = {parts[0] for parts, _ in members}
            strip = len(tops) == 1 and all(len(parts) > 1 for parts, _ in members)

            files: list[FileEntry] = []
            for parts, info in members:
                if strip:
                    parts = parts[1:]
                if any(part in excluded_dirs for part in parts[:-1]):
                    continue
                if parts[-1] in excluded_files:
                    continue
                files.append(FileEntry("/".join(parts), _decode(archive.read(info))))
    except (zipfile.BadZipFile, zlib.error, RuntimeError, EOFError) as e:
        raise FatalRetrievalError(f"Cannot read archive {name}: {e}") from e

    logger.info("Extracted %d files from %s", len(files), name)
    return RetrievalReport(snapshot=ProjectSnapshot(files), source_label=name)
