"""
Tests for Label Extraction
==========================

Tests for:
- Low-confidence review flags
- Vision prompt construction
- Unparseable replies
"""

import json

import pytest

from services.label_compliance.extraction import (
    DEFAULT_OVERALL_CONFIDENCE,
    Extraction,
    LabelExtractor,
    low_confidence_reasons,
)
from shared.database.models import PanelType
from shared.llm import LLMQuotaExceededError


IMAGE = "data:image/png;base64,iVBORw0KGgo="


class TestReviewFlags:
    """Tests for confidence-based review flags."""

    def test_reasons_for_values_under_threshold(self) -> None:
        reasons = low_confidence_reasons(
            {"overall": 0.9, "thcContent": 0.6, "warnings": 0.849, "netWeight": "n/a", "x": True},
            threshold=0.85,
        )

        assert reasons == ["Low confidence in thcContent: 60%", "Low confidence in warnings: 85%"]

    def test_flag_set_from_confidence(self) -> None:
        data = LabelExtractor(provider=None, low_confidence_threshold=0.85).apply_review_flags(
            {"extractionConfidence": {"overall": 0.7}}
        )

        assert data["flaggedForReview"] is True
        assert data["reviewReasons"] == ["Low confidence in overall: 70%"]

    def test_model_reasons_take_precedence(self) -> None:
        data = LabelExtractor(low_confidence_threshold=0.85).apply_review_flags(
            {
                "extractionConfidence": {"overall": 0.5},
                "flaggedForReview": False,
                "reviewReasons": ["Glare over the warning text"],
            }
        )

        assert data["flaggedForReview"] is True
        assert data["reviewReasons"] == ["Glare over the warning text"]

    def test_confident_extraction_not_flagged(self) -> None:
        data = LabelExtractor(low_confidence_threshold=0.85).apply_review_flags(
            {"extractionConfidence": {"overall": 0.95, "warnings": 0.9}}
        )

        assert data["flaggedForReview"] is False
        assert data["reviewReasons"] == []

    def test_overall_confidence_default(self) -> None:
        extraction = Extraction(data={}, panel_type=PanelType.FRONT)

        assert extraction.overall_confidence == DEFAULT_OVERALL_CONFIDENCE
        assert extraction.confidence_details == {}


class TestLabelExtractor:
    """Tests for the vision extraction call."""

    @pytest.mark.asyncio
    async def test_extract_parses_reply(self, fake_llm: type) -> None:
        reply = json.dumps(
            {
                "productName": "Huckleberry Gummies",
                "warnings": {"keepOutOfReach": {"present": True}},
                "extractionConfidence": {"overall": 0.92, "thcContent": 0.8},
            }
        )
        provider = fake_llm(f"```json\n{reply}\n```")
        extractor = LabelExtractor(provider=provider, low_confidence_threshold=0.85)

        extraction = await extractor.extract(IMAGE, "back", "edibles", "Montana")

        assert extraction.panel_type is PanelType.BACK
        assert extraction.data["productName"] == "Huckleberry Gummies"
        assert extraction.flagged_for_review is True
        assert extraction.overall_confidence == 0.92
        assert extraction.parse_error is False

        message = provider.calls[0]["messages"][-1]
        assert message.images == [IMAGE]
        assert "back panel image from a cannabis edibles product" in message.content
        assert "For the back panel of a edibles product in Montana" in provider.last_system_prompt

    @pytest.mark.asyncio
    async def test_unparseable_reply_keeps_raw_text(self, fake_llm: type) -> None:
        extractor = LabelExtractor(provider=fake_llm("The image is too blurry to read."))

        extraction = await extractor.extract(IMAGE, PanelType.FRONT, "flower", "Montana")

        assert extraction.parse_error is True
        assert extraction.data["rawTextExtracted"] == "The image is too blurry to read."
        assert extraction.flagged_for_review is False

    @pytest.mark.asyncio
    async def test_invalid_panel_type(self, fake_llm: type) -> None:
        with pytest.raises(ValueError):
            await LabelExtractor(provider=fake_llm()).extract(IMAGE, "top", "flower", "Montana")

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self, fake_llm: type) -> None:
        extractor = LabelExtractor(provider=fake_llm(LLMQuotaExceededError("AI credits exhausted")))

        with pytest.raises(LLMQuotaExceededError) as exc_info:
            await extractor.extract(IMAGE, "front", "flower", "Montana")

        assert exc_info.value.status_code == 402
