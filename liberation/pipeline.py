"""Run orchestration: retrieve, analyze, decide, clean, polyfill, package, record."""

import asyncio
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .ai_client import TextTransformClient
from .analyzer import PatternAnalyzer
from .cleaner import CleaningEngine
from .config import LiberationConfig
from .errors import FatalRetrievalError, LedgerError, RunAbandoned
from .ledger import JsonLinesLedger, RunLedger
from .logging import get_logger
from .models import (
    AnalysisResult,
    LiberationRecord,
    LiberationResult,
    ProjectSnapshot,
    RetrievalReport,
)
from .packager import ArchiveStore, LocalArchiveStore, Packager
from .polyfills import PolyfillSynthesizer
from .retriever import GitHubRetriever, extract_archive, looks_like_repository, parse_repository

logger = get_logger("pipeline")

ProgressCallback = Callable[[int, str], None]
Source = str | Path | bytes


@dataclass
class RunOptions:
    project_name: str | None = None
    owner_id: str = "local"
    use_ai: bool = True
    ref: str | None = None
    # Called with the analysis before any cleaning; False abandons the run.
    approve: Callable[[AnalysisResult], bool] | None = None


class _Progress:
    """Forwards progress while keeping the percentage non-decreasing."""

    def __init__(self, callback: ProgressCallback | None):
        self.callback = callback
        self.percent = 0

    def __call__(self, percent: int, message: str) -> None:
        self.percent = max(self.percent, min(100, int(percent)))
        logger.debug("%3d%% %s", self.percent, message)
        if self.callback:
            self.callback(self.percent, message)

    def span(self, start: int, end: int, label: str) -> Callable[[int, int], None]:
        """A (done, total) hook mapped onto the [start, end] range."""

        def report(done: int, total: int) -> None:
            fraction = done / total if total else 1.0
            self(start + round((end - start) * fraction), f"{label} {done}/{total}")

        return report


def default_project_name(source: Source) -> str:
    if isinstance(source, bytes):
        return "project"
    if isinstance(source, Path) or str(source).lower().endswith(".zip"):
        return Path(source).stem or "project"
    text = str(source)
    if looks_like_repository(text):
        return parse_repository(text).repo
    return "project"


class Liberator:
    """Runs the whole pipeline for one source at a time."""

    def __init__(
        self,
        config: LiberationConfig,
        store: ArchiveStore,
        ledger: RunLedger,
        ai_client: TextTransformClient | None = None,
        retriever: GitHubRetriever | None = None,
    ):
        self.config = config
        self.store = store
        self.ledger = ledger
        if ai_client is None and config.ai.enabled:
            ai_client = TextTransformClient(config.ai)
        self.ai_client = ai_client
        self.retriever = retriever or GitHubRetriever(config)
        self.analyzer = PatternAnalyzer(config)
        self.cleaner = CleaningEngine(config, ai_client)
        self.synthesizer = PolyfillSynthesizer(config)
        self.packager = Packager(config, store)

    @classmethod
    def from_config(cls, config: LiberationConfig) -> "Liberator":
        """Liberator with local archive storage and ledger under ``config.data_dir``."""
        return cls(
            config,
            LocalArchiveStore(config.data_dir / "archives"),
            JsonLinesLedger(config.data_dir / "ledger.jsonl"),
        )

    async def retrieve(
        self,
        source: Source,
        ref: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> RetrievalReport:
        """Snapshot a ZIP (bytes or path) or a GitHub repository.

        Raises:
            FatalRetrievalError: If the source cannot be read at all
        """
        tracker = progress if isinstance(progress, _Progress) else _Progress(progress)
        if isinstance(source, bytes):
            return extract_archive(source, "upload.zip", self.config)

        text = str(source)
        if isinstance(source, Path) or text.lower().endswith(".zip"):
            path = Path(source)
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise FatalRetrievalError(f"Cannot read {path}: {e}") from e
            return extract_archive(data, path.name, self.config)

        repo = parse_repository(text, ref)
        tracker(0, f"Listing {repo.label}")
        return await self.retriever.fetch(repo, on_progress=tracker.span(0, 40, "Fetched"))

    def analyze(self, snapshot: ProjectSnapshot) -> AnalysisResult:
        return self.analyzer.analyze(snapshot)

    async def complete(
        self,
        retrieval: RetrievalReport,
        analysis: AnalysisResult,
        options: RunOptions,
        progress: ProgressCallback | None = None,
    ) -> LiberationResult:
        """Everything after the decision point: clean, polyfill, package, record."""
        tracker = progress if isinstance(progress, _Progress) else _Progress(progress)
        project_name = options.project_name or default_project_name(
            retrieval.source_label.split("@", 1)[0]
        )

        tracker(50, "Cleaning")
        report = await self.cleaner.clean(
            retrieval.snapshot,
            analysis,
            use_ai=options.use_ai,
            on_progress=tracker.span(55, 80, "AI rewrite"),
        )
        tracker(80, "Cleaning done")

        tracker(85, "Generating polyfills")
        final_files, polyfills = self.synthesizer.apply(report.files)
        stats = replace(report.stats, polyfills_generated=len(polyfills))
        score_after = self.analyzer.analyze(final_files).score

        tracker(90, "Packaging")
        archive_ref = await self.packager.package(
            final_files,
            project_name=project_name,
            analysis=analysis,
            stats=stats,
            score_after=score_after,
            removed_dependencies=report.removed_dependencies,
            removed_paths=report.removed_paths,
            skipped=retrieval.skipped,
            polyfills=polyfills,
        )
        tracker(95, "Recording run")

        record = LiberationRecord(
            run_id=uuid.uuid4().hex,
            owner_id=options.owner_id,
            project_name=project_name,
            score_before=analysis.score,
            score_after=score_after,
            files_total=len(final_files),
            created_at=datetime.now(timezone.utc).isoformat(),
            archive_ref=archive_ref,
        )
        try:
            await asyncio.to_thread(self.ledger.insert, record)
        except LedgerError as e:
            logger.error("Run %s not recorded: %s", record.run_id, e)
            record = None

        tracker(100, "Done")
        logger.info("Liberated %s: score %d -> %d", project_name, analysis.score, score_after)
        return LiberationResult(
            analysis=analysis,
            stats=stats,
            archive_ref=archive_ref,
            score_after=score_after,
            project_name=project_name,
            skipped_files=retrieval.skipped,
            removed_dependencies=report.removed_dependencies,
            record=record,
        )

    async def run(
        self,
        source: Source,
        options: RunOptions | None = None,
        progress: ProgressCallback | None = None,
    ) -> LiberationResult:
        """Full run from source to stored archive.

        Raises:
            FatalRetrievalError: If retrieval fails
            RunAbandoned: If ``options.approve`` declines the analysis
            PackagingError: If the archive cannot be produced
        """
        options = options or RunOptions()
        tracker = _Progress(progress)

        tracker(0, "Retrieving")
        retrieval = await self.retrieve(source, options.ref, tracker)
        tracker(40, f"Retrieved {len(retrieval.snapshot)} files")

        analysis = self.analyze(retrieval.snapshot)
        tracker(45, f"Analysis score {analysis.score}")
        logger.info(
            "Analysis of %s: score %d, %d issues",
            retrieval.source_label, analysis.score, len(analysis.issues),
        )

        if options.approve is not None and not options.approve(analysis):
            raise RunAbandoned("Run declined after analysis")

        if options.project_name is None:
            options = replace(options, project_name=default_project_name(source))
        return await self.complete(retrieval, analysis, options, tracker)


async def run_liberation(
    source: Source,
    config: LiberationConfig | None = None,
    options: RunOptions | None = None,
    progress: ProgressCallback | None = None,
) -> LiberationResult:
    """One-shot run with local storage under ``config.data_dir``."""
    liberator = Liberator.from_config(config or LiberationConfig.from_env())
    return await liberator.run(source, options, progress)
