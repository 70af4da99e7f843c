"""
Regulatory Change Detection
===========================

Checks tracked regulatory sources for content changes and turns changed
content into rule change suggestions.

Per source, in order:
1. Fetch the page (failure -> scrape_error, source row untouched)
2. Compare the SHA-256 digest with the stored one (equal and not forced ->
   no_changes, only last_checked is written)
3. Diff the text against the state's active rules (upstream failure ->
   ai_error, digest not persisted so the next run re-analyses)
4. Store suggestions (unparseable reply -> parse_error with none stored;
   a failed store -> error, digest not persisted)

Sources are processed sequentially; one failing source never aborts the batch.

Version: 0.1.0
"""

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.analyzer import RegulatoryDiffAnalyzer
from services.regulatory_monitor.scrapers import ContentFetcher, FirecrawlFetcher
from services.regulatory_monitor.suggestions import SuggestionStore, load_rule_context
from shared.config import settings
from shared.database.models import RegulatorySourceModel
from shared.database.postgres import as_utc, postgres_session, utcnow
from shared.llm import LLMConfigurationError, LLMError
from shared.logging import get_logger


logger = get_logger(__name__)


class SourceCheckStatus(str, Enum):
    """Outcome of checking one source."""

    SUCCESS = "success"
    NO_CHANGES = "no_changes"
    SCRAPE_ERROR = "scrape_error"
    AI_ERROR = "ai_error"
    PARSE_ERROR = "parse_error"
    ERROR = "error"


@dataclass
class SourceCheckResult:
    """Per-source entry of a batch check."""

    source_id: uuid.UUID
    source_name: str
    state: str | None
    status: SourceCheckStatus
    content_changed: bool = False
    suggestions_created: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source_id": str(self.source_id),
            "source_name": self.source_name,
            "state": self.state,
            "content_changed": self.content_changed,
            "suggestions_created": self.suggestions_created,
            "status": self.status.value,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchCheckResult:
    """Aggregate of one check run."""

    results: list[SourceCheckResult] = field(default_factory=list)

    @property
    def sources_checked(self) -> int:
        return len(self.results)

    @property
    def sources_with_changes(self) -> int:
        return sum(1 for r in self.results if r.content_changed)

    @property
    def total_suggestions_created(self) -> int:
        return sum(r.suggestions_created for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "sources_checked": self.sources_checked,
            "sources_with_changes": self.sources_with_changes,
            "total_suggestions_created": self.total_suggestions_created,
            "results": [r.to_dict() for r in self.results],
        }


class ChangeDetector:
    """
    Compares content digests.

    The digest is an opaque equality token: any byte change counts, and no
    semantic diff is attempted.
    """

    @staticmethod
    def has_changed(stored_hash: str | None, new_hash: str) -> bool:
        return stored_hash != new_hash

    @staticmethod
    def is_due(source: RegulatorySourceModel, now: datetime) -> bool:
        """Whether a source's check interval has elapsed."""
        last_checked = as_utc(source.last_checked)
        if last_checked is None:
            return True
        return last_checked + timedelta(days=source.check_frequency_days or 0) <= now


class RegulatoryCheckRunner:
    """
    Runs the fetch, detect, analyze and store pipeline over sources.

    Collaborators are injectable; the fetcher is created lazily so a missing
    scrape key fails the run before any source is touched.
    """

    def __init__(
        self,
        fetcher: ContentFetcher | None = None,
        analyzer: RegulatoryDiffAnalyzer | None = None,
        store: SuggestionStore | None = None,
        detector: ChangeDetector | None = None,
    ) -> None:
        self._fetcher = fetcher
        self.analyzer = analyzer or RegulatoryDiffAnalyzer()
        self.store = store or SuggestionStore()
        self.detector = detector or ChangeDetector()

    @property
    def fetcher(self) -> ContentFetcher:
        if self._fetcher is None:
            self._fetcher = FirecrawlFetcher()
        return self._fetcher

    async def close(self) -> None:
        if self._fetcher is not None:
            await self._fetcher.close()

    async def load_sources(
        self,
        db: AsyncSession,
        state_id: uuid.UUID | None = None,
    ) -> list[RegulatorySourceModel]:
        """Active sources, optionally for one state."""
        query = select(RegulatorySourceModel).where(RegulatorySourceModel.is_active.is_(True))
        if state_id is not None:
            query = query.where(RegulatorySourceModel.state_id == state_id)
        result = await db.execute(query.order_by(RegulatorySourceModel.source_name))
        return list(result.scalars().all())

    async def check_sources(
        self,
        db: AsyncSession,
        sources: Sequence[RegulatorySourceModel],
        force: bool = False,
    ) -> BatchCheckResult:
        """
        Check sources one after another.

        Raises:
            FetcherConfigurationError: scrape key missing
            LLMConfigurationError: reasoning provider key missing
        """
        batch = BatchCheckResult()
        # Resolve the fetcher up front so configuration errors fail the whole run
        _ = self.fetcher

        logger.info("regulatory_check_started", sources=len(sources), force=force)

        for source in sources:
            try:
                result = await self.check_source(db, source, force=force)
            except LLMConfigurationError:
                raise
            except Exception as e:
                logger.error(
                    "source_check_failed",
                    source_id=str(source.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = SourceCheckResult(
                    source_id=source.id,
                    source_name=source.source_name,
                    state=self._state_abbreviation(source),
                    status=SourceCheckStatus.ERROR,
                    error=str(e) or type(e).__name__,
                )
            batch.results.append(result)

        logger.info(
            "regulatory_check_completed",
            sources_checked=batch.sources_checked,
            sources_with_changes=batch.sources_with_changes,
            suggestions_created=batch.total_suggestions_created,
        )
        return batch

    async def check_source(
        self,
        db: AsyncSession,
        source: RegulatorySourceModel,
        force: bool = False,
    ) -> SourceCheckResult:
        """Run the pipeline for a single source."""
        result = SourceCheckResult(
            source_id=source.id,
            source_name=source.source_name,
            state=self._state_abbreviation(source),
            status=SourceCheckStatus.SUCCESS,
        )

        fetched = await self.fetcher.fetch(source.source_url)
        if not fetched.success:
            result.status = SourceCheckStatus.SCRAPE_ERROR
            result.error = fetched.error
            logger.warning("source_scrape_failed", source_id=str(source.id), error=fetched.error)
            return result

        changed = self.detector.has_changed(source.content_hash, fetched.content_hash)
        result.content_changed = changed
        now = utcnow()

        if not changed and not force:
            source.last_checked = now
            await db.flush()
            result.status = SourceCheckStatus.NO_CHANGES
            logger.info("source_unchanged", source_id=str(source.id))
            return result

        rules = await load_rule_context(db, source.state_id)
        try:
            analysis = await self.analyzer.analyze(
                content=fetched.content or "",
                rules=rules,
                source_name=source.source_name,
                source_url=source.source_url,
                state_name=source.state.name if source.state else None,
            )
        except LLMConfigurationError:
            raise
        except LLMError as e:
            result.status = SourceCheckStatus.AI_ERROR
            result.error = e.message
            logger.error(
                "source_analysis_failed",
                source_id=str(source.id),
                status_code=e.status_code,
                error=e.message,
            )
            return result

        if analysis.parse_error:
            self._record_digest(source, fetched.content_hash, changed, now)
            await db.flush()
            result.status = SourceCheckStatus.PARSE_ERROR
            return result

        # The digest is only recorded once the suggestions are stored, so a
        # failed store leaves the source due for re-analysis.
        result.suggestions_created = await self.store.store_candidates(
            db,
            state_id=source.state_id,
            candidates=analysis.candidates,
            source_id=source.id,
            existing_rules=rules,
        )
        self._record_digest(source, fetched.content_hash, changed, now)
        await db.flush()

        logger.info(
            "source_checked",
            source_id=str(source.id),
            content_changed=changed,
            suggestions_created=result.suggestions_created,
        )
        return result

    @staticmethod
    def _record_digest(
        source: RegulatorySourceModel,
        content_hash: str,
        changed: bool,
        now: datetime,
    ) -> None:
        source.last_checked = now
        source.content_hash = content_hash
        if changed:
            source.last_content_change = now

    @staticmethod
    def _state_abbreviation(source: RegulatorySourceModel) -> str | None:
        return source.state.abbreviation if source.state else None


class ChangeMonitor:
    """
    Periodically checks sources whose interval has elapsed.

    Each pass runs in its own database session and commits at the end.
    """

    def __init__(
        self,
        runner_factory: Callable[[], RegulatoryCheckRunner] = RegulatoryCheckRunner,
        poll_interval_seconds: int | None = None,
    ) -> None:
        self.runner_factory = runner_factory
        self.poll_interval_seconds = poll_interval_seconds or settings.monitor.poll_interval_seconds
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the monitoring loop."""
        self._running = True
        logger.info("change_monitor_started", poll_interval_seconds=self.poll_interval_seconds)

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("monitor_loop_error", error=str(e), error_type=type(e).__name__)

            await asyncio.sleep(self.poll_interval_seconds)

    async def stop(self) -> None:
        """Stop the monitoring loop."""
        self._running = False
        logger.info("change_monitor_stopped")

    async def run_once(self) -> BatchCheckResult | None:
        """Check every due source once. Returns None when nothing was due."""
        runner = self.runner_factory()
        try:
            async with postgres_session() as db:
                now = utcnow()
                sources = await runner.load_sources(db)
                due = [s for s in sources if runner.detector.is_due(s, now)]
                if not due:
                    logger.debug("no_sources_due", active_sources=len(sources))
                    return None
                return await runner.check_sources(db, due)
        finally:
            await runner.close()
