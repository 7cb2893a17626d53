"""Cleaning engine: removal, deterministic rewrite, then the AI-assisted tier."""

import asyncio
from typing import Awaitable, Callable

from .ai_client import TextTransformClient, TransformResult
from .config import LiberationConfig
from .detect import FileRole, identify_role, should_remove_file
from .logging import get_logger
from .models import (
    AnalysisResult,
    CleaningOutcome,
    CleaningReport,
    CleaningStats,
    FileEntry,
    ProjectSnapshot,
)
from .patterns import SignatureMatcher
from .rewrite import Rewriter, count_cdn_urls, removed_dependencies

logger = get_logger("cleaner")

ProgressHook = Callable[[int, int], None]


class CleaningEngine:
    """Turns an analyzed snapshot into a cleaned file set.

    Phase A drops platform-owned files, phase B applies the rule-based
    rewrites and phase C optionally asks the AI tier to finish source files,
    one call at a time.
    """

    def __init__(
        self,
        config: LiberationConfig,
        ai_client: TextTransformClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.ai_client = ai_client
        self.matcher = SignatureMatcher(config)
        self.rewriter = Rewriter(config, self.matcher)
        self._sleep = sleep

    async def clean(
        self,
        snapshot: ProjectSnapshot,
        analysis: AnalysisResult,
        use_ai: bool = True,
        on_progress: ProgressHook | None = None,
    ) -> CleaningReport:
        """Clean a snapshot.

        Args:
            snapshot: Files as retrieved
            analysis: Analyzer output for the same snapshot
            use_ai: Whether phase C may run (it also needs an enabled client)
            on_progress: Called with (done, total) after each AI submission

        Returns:
            The surviving files, one outcome per file and the counters
        """
        # Phase A
        doomed = set(analysis.files_to_remove)
        doomed.update(path for path in snapshot.paths() if should_remove_file(path, self.config))
        removed_paths = tuple(sorted(path for path in doomed if path in snapshot))
        survivors = snapshot.without(removed_paths)
        logger.info("Removed %d platform files", len(removed_paths))

        # Phase B
        contents: dict[str, str | bytes] = {}
        notes: dict[str, tuple[str, ...]] = {}
        dependencies: list[str] = []
        cdn_replaced = 0
        for entry in survivors.entries():
            if not entry.is_text:
                contents[entry.path] = entry.content
                notes[entry.path] = ()
                continue
            result = self.rewriter.rewrite(entry.path, entry.text)
            contents[entry.path] = result.content
            notes[entry.path] = result.notes
            for name in removed_dependencies(result.notes):
                if name not in dependencies:
                    dependencies.append(name)
            before = count_cdn_urls(entry.text, self.matcher)
            if before:
                cdn_replaced += max(0, before - count_cdn_urls(result.content, self.matcher))

        locally_changed = sum(1 for path in contents if notes[path])
        logger.info("Rewrote %d files locally", locally_changed)

        # Phase C
        ai_changed: set[str] = set()
        if use_ai and self.ai_client is not None and self.ai_client.enabled:
            ai_changed = await self._ai_pass(contents, on_progress)
        elif use_ai:
            logger.info("AI tier disabled; keeping deterministic rewrites only")

        outcomes = tuple(
            CleaningOutcome(
                path=path,
                final_content=contents[path],
                was_changed=bool(notes[path]) or path in ai_changed,
                change_notes=notes[path],
                ai_changed=path in ai_changed,
            )
            for path in sorted(contents)
        )
        stats = CleaningStats(
            files_removed=len(removed_paths),
            files_changed_locally=locally_changed,
            files_changed_by_ai=len(ai_changed),
            dependencies_removed=len(dependencies),
            cdn_urls_replaced=cdn_replaced,
        )
        files = ProjectSnapshot(FileEntry(path, content) for path, content in contents.items())
        return CleaningReport(
            files=files,
            outcomes=outcomes,
            stats=stats,
            removed_paths=removed_paths,
            removed_dependencies=tuple(dependencies),
        )

    async def _ai_pass(
        self, contents: dict[str, str | bytes], on_progress: ProgressHook | None
    ) -> set[str]:
        """Submit source files one at a time; failures keep the phase B text."""
        sources = [
            path
            for path in sorted(contents)
            if isinstance(contents[path], str) and identify_role(path) is FileRole.SOURCE
        ]
        changed: set[str] = set()
        for index, path in enumerate(sources):
            if index:
                await self._sleep(self.config.ai.call_delay)
            current = contents[path]
            try:
                result = await self.ai_client.transform(self.config.system_instruction, current)
            except Exception as e:
                result = TransformResult.failure(f"{type(e).__name__}: {e}")
            if not result.ok:
                logger.warning("AI tier failed for %s: %s", path, result.error)
            candidate = result.or_else(current)
            if candidate.strip() and candidate != current:
                contents[path] = candidate
                changed.add(path)
            if on_progress:
                on_progress(index + 1, len(sources))
        logger.info("AI tier changed %d of %d source files", len(changed), len(sources))
        return changed
