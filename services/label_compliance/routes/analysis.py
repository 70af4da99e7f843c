"""
Label Analysis Routes
=====================

Stateless extraction of a single panel image; nothing is persisted.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends

from services.label_compliance.extraction import LabelExtractor
from services.label_compliance.workflow import decode_data_url
from shared.auth import CurrentUser
from shared.models.compliance import (
    AnalyzeLabelRequest,
    AnalyzeLabelResponse,
    ExtractionConfidence,
)

router = APIRouter()

_extractor: LabelExtractor | None = None


def get_extractor() -> LabelExtractor:
    global _extractor
    if _extractor is None:
        _extractor = LabelExtractor()
    return _extractor


@router.post("", response_model=AnalyzeLabelResponse)
async def analyze_label(
    payload: AnalyzeLabelRequest,
    user: CurrentUser,
    extractor: LabelExtractor = Depends(get_extractor),
) -> AnalyzeLabelResponse:
    """
    Extract compliance fields from one label panel.

    Rate-limit (429) and quota (402) errors from the AI provider are
    returned with the same status.
    """
    decode_data_url(payload.image_base64)
    extraction = await extractor.extract(
        payload.image_base64,
        payload.panel_type,
        payload.product_type,
        payload.state_name,
    )
    return AnalyzeLabelResponse(
        extracted_data=extraction.data,
        panel_type=extraction.panel_type,
        confidence=ExtractionConfidence(
            overall=extraction.overall_confidence,
            details=extraction.confidence_details,
        ),
    )
