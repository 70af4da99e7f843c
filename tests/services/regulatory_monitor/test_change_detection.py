"""
Tests for Regulatory Change Detection
=====================================

Tests for:
- Due-date and digest comparison
- Per-source check outcomes (no changes, success, scrape, AI and parse errors)
- Batch isolation and configuration failures
- Monitor pass over due sources
"""

import json
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from services.regulatory_monitor.analyzer import RegulatoryDiffAnalyzer
from services.regulatory_monitor.change_detection import (
    BatchCheckResult,
    ChangeDetector,
    ChangeMonitor,
    RegulatoryCheckRunner,
    SourceCheckResult,
    SourceCheckStatus,
)
from services.regulatory_monitor.scrapers import (
    ContentFetcher,
    FetcherConfigurationError,
    FetchResult,
    compute_content_hash,
)
from services.regulatory_monitor.suggestions import SuggestionStore
from shared.database.models import (
    ComplianceRuleModel,
    RegulatorySourceModel,
    StateModel,
    SuggestionStatus,
)
from shared.llm import LLMConfigurationError, LLMRateLimitError


PAGE = "# ARM 42.39.311\nThe universal THC symbol must appear on the front panel."

NEW_RULE_REPLY = json.dumps(
    [
        {
            "change_type": "new",
            "suggested_name": "Universal THC Symbol",
            "suggested_description": "Universal THC symbol on the front panel",
            "suggested_category": "Symbols & Icons",
            "suggested_severity": "error",
            "suggested_citation": "ARM 42.39.311",
        }
    ]
)


class FakeFetcher(ContentFetcher):
    """Returns a fixed page per URL; unknown URLs fail."""

    def __init__(self, pages: dict[str, str | None]) -> None:
        self.pages = pages
        self.fetched: list[str] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def fetch(self, url: str) -> FetchResult:
        self.fetched.append(url)
        content = self.pages.get(url)
        if content is None:
            return FetchResult.failed(url, "Request timed out")
        return FetchResult(url=url, success=True, content=content)

    async def close(self) -> None:
        self.closed = True


def _runner(fetcher: ContentFetcher, provider: object) -> RegulatoryCheckRunner:
    return RegulatoryCheckRunner(
        fetcher=fetcher,
        analyzer=RegulatoryDiffAnalyzer(provider=provider),  # type: ignore[arg-type]
    )


# ============================================================================
# Change detector
# ============================================================================


class TestChangeDetector:
    """Tests for digest comparison and scheduling."""

    def test_first_fetch_counts_as_change(self) -> None:
        assert ChangeDetector.has_changed(None, compute_content_hash(PAGE)) is True

    def test_equal_digest_is_unchanged(self) -> None:
        digest = compute_content_hash(PAGE)

        assert ChangeDetector.has_changed(digest, digest) is False

    def test_never_checked_is_due(self) -> None:
        source = RegulatorySourceModel(check_frequency_days=7, last_checked=None)

        assert ChangeDetector.is_due(source, datetime.now(UTC)) is True

    def test_interval_elapsed(self) -> None:
        now = datetime.now(UTC)
        source = RegulatorySourceModel(check_frequency_days=7, last_checked=now - timedelta(days=8))

        assert ChangeDetector.is_due(source, now) is True

    def test_interval_not_elapsed(self) -> None:
        now = datetime.now(UTC)
        source = RegulatorySourceModel(check_frequency_days=7, last_checked=now - timedelta(days=2))

        assert ChangeDetector.is_due(source, now) is False

    def test_naive_timestamp_treated_as_utc(self) -> None:
        now = datetime.now(UTC)
        naive = (now - timedelta(days=1)).replace(tzinfo=None)
        source = RegulatorySourceModel(check_frequency_days=7, last_checked=naive)

        assert ChangeDetector.is_due(source, now) is False


class TestBatchCheckResult:
    """Tests for batch aggregation."""

    def test_to_dict(self) -> None:
        source_id = uuid.uuid4()
        batch = BatchCheckResult(
            results=[
                SourceCheckResult(source_id, "A", "MT", SourceCheckStatus.SUCCESS, True, 2),
                SourceCheckResult(
                    uuid.uuid4(), "B", "MT", SourceCheckStatus.SCRAPE_ERROR, error="timeout"
                ),
            ]
        )

        data = batch.to_dict()

        assert data["success"] is True
        assert data["sources_checked"] == 2
        assert data["sources_with_changes"] == 1
        assert data["total_suggestions_created"] == 2
        assert data["results"][0]["source_id"] == str(source_id)
        assert "error" not in data["results"][0]
        assert data["results"][1]["error"] == "timeout"


# ============================================================================
# Check runner
# ============================================================================


class TestRegulatoryCheckRunner:
    """Tests for the fetch, detect, analyze and store pipeline."""

    @pytest.mark.asyncio
    async def test_changed_content_creates_suggestions(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        warning_rule: ComplianceRuleModel,
        fake_llm: type,
    ) -> None:
        provider = fake_llm(NEW_RULE_REPLY)
        runner = _runner(FakeFetcher({montana_source.source_url: PAGE}), provider)

        sources = await runner.load_sources(db_session)
        batch = await runner.check_sources(db_session, sources)

        (result,) = batch.results
        assert result.status is SourceCheckStatus.SUCCESS
        assert result.content_changed is True
        assert result.suggestions_created == 1
        assert result.state == "MT"
        assert montana_source.content_hash == compute_content_hash(PAGE)
        assert montana_source.last_checked is not None
        assert montana_source.last_content_change is not None
        assert "Keep Out of Reach Warning" in provider.last_prompt

        suggestions = await SuggestionStore().list_suggestions(db_session)
        assert [s.suggested_name for s in suggestions] == ["Universal THC Symbol"]
        assert suggestions[0].source_id == montana_source.id
        assert suggestions[0].status == SuggestionStatus.PENDING

    @pytest.mark.asyncio
    async def test_unchanged_content_skips_analysis(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        montana_source.content_hash = compute_content_hash(PAGE)
        await db_session.flush()
        provider = fake_llm()
        runner = _runner(FakeFetcher({montana_source.source_url: PAGE}), provider)

        result = await runner.check_source(db_session, montana_source)

        assert result.status is SourceCheckStatus.NO_CHANGES
        assert result.content_changed is False
        assert provider.calls == []
        assert montana_source.last_checked is not None
        assert montana_source.last_content_change is None

    @pytest.mark.asyncio
    async def test_force_analyzes_unchanged_content(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        montana_source.content_hash = compute_content_hash(PAGE)
        await db_session.flush()
        provider = fake_llm("[]")
        runner = _runner(FakeFetcher({montana_source.source_url: PAGE}), provider)

        result = await runner.check_source(db_session, montana_source, force=True)

        assert result.status is SourceCheckStatus.SUCCESS
        assert result.content_changed is False
        assert len(provider.calls) == 1
        assert montana_source.last_content_change is None

    @pytest.mark.asyncio
    async def test_scrape_error_leaves_source_untouched(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        runner = _runner(FakeFetcher({}), fake_llm())

        result = await runner.check_source(db_session, montana_source)

        assert result.status is SourceCheckStatus.SCRAPE_ERROR
        assert result.error == "Request timed out"
        assert montana_source.last_checked is None
        assert montana_source.content_hash is None

    @pytest.mark.asyncio
    async def test_ai_error_keeps_previous_digest(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        runner = _runner(
            FakeFetcher({montana_source.source_url: PAGE}),
            fake_llm(LLMRateLimitError("Rate limit exceeded. Please try again in a moment.")),
        )

        result = await runner.check_source(db_session, montana_source)

        assert result.status is SourceCheckStatus.AI_ERROR
        assert result.content_changed is True
        assert "Rate limit" in (result.error or "")
        assert montana_source.content_hash is None

    @pytest.mark.asyncio
    async def test_parse_error_persists_digest(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        runner = _runner(
            FakeFetcher({montana_source.source_url: PAGE}),
            fake_llm("The page has no labeling requirements."),
        )

        result = await runner.check_source(db_session, montana_source)

        assert result.status is SourceCheckStatus.PARSE_ERROR
        assert result.suggestions_created == 0
        assert montana_source.content_hash == compute_content_hash(PAGE)

    @pytest.mark.asyncio
    async def test_failed_store_keeps_source_due_for_reanalysis(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        class FailingStore(SuggestionStore):
            async def store_candidates(self, *args: object, **kwargs: object) -> int:
                raise RuntimeError("insert failed")

        fetcher = FakeFetcher({montana_source.source_url: PAGE})
        runner = RegulatoryCheckRunner(
            fetcher=fetcher,
            analyzer=RegulatoryDiffAnalyzer(provider=fake_llm(NEW_RULE_REPLY)),  # type: ignore[arg-type]
            store=FailingStore(),
        )

        batch = await runner.check_sources(db_session, [montana_source])
        await db_session.commit()

        (failed,) = batch.results
        assert failed.status is SourceCheckStatus.ERROR
        assert failed.error == "insert failed"
        assert montana_source.content_hash is None
        assert montana_source.last_content_change is None
        assert await SuggestionStore().list_suggestions(db_session) == []

        retry = _runner(fetcher, fake_llm(NEW_RULE_REPLY))
        (result,) = (await retry.check_sources(db_session, [montana_source])).results

        assert result.status is SourceCheckStatus.SUCCESS
        assert result.content_changed is True
        assert result.suggestions_created == 1
        assert montana_source.content_hash == compute_content_hash(PAGE)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        broken = RegulatorySourceModel(
            state_id=montana.id,
            state=montana,
            source_name="Broken Page",
            source_url="https://broken.mt.gov/",
        )
        db_session.add(broken)
        await db_session.flush()
        runner = _runner(FakeFetcher({montana_source.source_url: PAGE}), fake_llm("[]"))

        sources = await runner.load_sources(db_session, state_id=montana.id)
        batch = await runner.check_sources(db_session, sources)

        statuses = {r.source_name: r.status for r in batch.results}
        assert statuses == {
            "Broken Page": SourceCheckStatus.SCRAPE_ERROR,
            "Montana Administrative Rules": SourceCheckStatus.SUCCESS,
        }

    @pytest.mark.asyncio
    async def test_inactive_sources_not_loaded(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        montana_source.is_active = False
        await db_session.flush()

        runner = _runner(FakeFetcher({}), fake_llm())

        assert await runner.load_sources(db_session) == []

    @pytest.mark.asyncio
    async def test_provider_configuration_error_fails_batch(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        runner = _runner(
            FakeFetcher({montana_source.source_url: PAGE}),
            fake_llm(LLMConfigurationError("AI_GATEWAY_API_KEY is not configured")),
        )

        with pytest.raises(LLMConfigurationError):
            await runner.check_sources(db_session, [montana_source])

    @pytest.mark.asyncio
    async def test_missing_scrape_key_fails_before_fetching(
        self,
        db_session: AsyncSession,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        runner = RegulatoryCheckRunner(analyzer=RegulatoryDiffAnalyzer(provider=fake_llm()))

        with patch(
            "services.regulatory_monitor.change_detection.FirecrawlFetcher",
            side_effect=FetcherConfigurationError("FIRECRAWL_API_KEY is not configured"),
        ):
            with pytest.raises(FetcherConfigurationError):
                await runner.check_sources(db_session, [montana_source])

        assert montana_source.last_checked is None


# ============================================================================
# Monitor
# ============================================================================


class TestChangeMonitor:
    """Tests for the periodic monitor."""

    @pytest.mark.asyncio
    async def test_run_once_checks_only_due_sources(
        self,
        db_session: AsyncSession,
        montana: StateModel,
        montana_source: RegulatorySourceModel,
        fake_llm: type,
    ) -> None:
        recent = RegulatorySourceModel(
            state_id=montana.id,
            state=montana,
            source_name="Checked Yesterday",
            source_url="https://dphhs.mt.gov/marijuana/",
            check_frequency_days=7,
            last_checked=datetime.now(UTC) - timedelta(days=1),
        )
        db_session.add(recent)
        await db_session.commit()

        fetcher = FakeFetcher({montana_source.source_url: PAGE})
        monitor = ChangeMonitor(
            runner_factory=lambda: _runner(fetcher, fake_llm("[]")),
            poll_interval_seconds=60,
        )

        class _SessionContext:
            async def __aenter__(self) -> AsyncSession:
                return db_session

            async def __aexit__(self, *exc: object) -> None:
                return None

        with patch(
            "services.regulatory_monitor.change_detection.postgres_session",
            return_value=_SessionContext(),
        ):
            batch = await monitor.run_once()

        assert batch is not None
        assert [r.source_name for r in batch.results] == ["Montana Administrative Rules"]
        assert fetcher.fetched == [montana_source.source_url]
        assert fetcher.closed is True

    @pytest.mark.asyncio
    async def test_stop_clears_running(self) -> None:
        monitor = ChangeMonitor(poll_interval_seconds=60)
        monitor._running = True

        await monitor.stop()

        assert monitor.running is False
