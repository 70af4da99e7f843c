"""
Label Extraction
================

Reads one label panel image with a vision model and returns the structured
label fields used for scoring.

Every numeric per-field confidence under the threshold (0.85 by default)
flags the extraction for human review. Flagging is informational and never
blocks a check.

Version: 0.1.0
"""

from dataclasses import dataclass
from typing import Any

from shared.config import settings
from shared.database.models import PanelType, ProductType
from shared.llm import LLMProvider, ModelRole, extract_json_object, get_llm_provider
from shared.logging import get_logger


logger = get_logger(__name__)

DEFAULT_OVERALL_CONFIDENCE = 0.9

EXTRACTION_PROMPT = """You are an expert cannabis label compliance analyst. Your job is to meticulously extract ALL information from cannabis product labels and packaging for regulatory compliance verification.

For the {panel_type} panel of a {product_type} product in {state_name}, extract:

1. **Text Content**: ALL visible text including:
   - Product name and brand
   - Warning statements (exact wording)
   - THC/THCa content and percentages
   - CBD content if present
   - Net weight (format: value and unit)
   - Ingredient lists
   - Manufacturer/distributor info
   - Batch/lot numbers
   - Testing dates and lab info
   - License numbers
   - "Keep out of reach of children" statement
   - Government warning text

2. **Visual Elements**:
   - Universal cannabis symbol (THC warning symbol) - present/absent, size estimate
   - Warning icons or symbols
   - Company logos
   - QR codes
   - Barcodes

3. **Layout & Formatting**:
   - Text sizes (relative: large, medium, small, very small)
   - Color contrasts (good, poor)
   - Font legibility
   - Warning text prominence

4. **Specific Compliance Items for {state_name}**:
   - Required warning placements
   - Net weight format (ounces then grams, or grams then ounces)
   - Any state-specific required elements

Return a JSON object with this structure:
{{
  "productName": "string or null",
  "brandName": "string or null",
  "thcContent": {{ "value": "string or null", "format": "percentage/mg", "prominent": true/false }},
  "thcaContent": {{ "value": "string or null", "format": "percentage/mg" }},
  "cbdContent": {{ "value": "string or null", "format": "percentage/mg" }},
  "netWeight": {{ "value": "string or null", "unit": "string", "format": "oz then g / g then oz / other" }},
  "ingredients": ["array of ingredients or empty"],
  "warnings": {{
    "keepOutOfReach": {{ "present": true/false, "exactText": "string or null" }},
    "governmentWarning": {{ "present": true/false, "exactText": "string or null" }},
    "pregnancyWarning": {{ "present": true/false }},
    "impairmentWarning": {{ "present": true/false }},
    "otherWarnings": ["array of other warning texts"]
  }},
  "universalSymbol": {{ "present": true/false, "sizeEstimate": "small/medium/large" }},
  "manufacturerInfo": {{ "name": "string or null", "address": "string or null", "license": "string or null" }},
  "batchInfo": {{ "lotNumber": "string or null", "testDate": "string or null", "labName": "string or null" }},
  "qrCode": true/false,
  "barcode": true/false,
  "layoutQuality": {{
    "textLegibility": "good/fair/poor",
    "warningProminence": "good/fair/poor",
    "overallContrast": "good/fair/poor"
  }},
  "additionalNotes": "any other relevant observations",
  "rawTextExtracted": "all text visible on the label in reading order",
  "extractionConfidence": {{
    "overall": 0.0-1.0,
    "thcContent": 0.0-1.0,
    "warnings": 0.0-1.0,
    "netWeight": 0.0-1.0,
    "manufacturerInfo": 0.0-1.0,
    "ingredients": 0.0-1.0
  }},
  "flaggedForReview": true/false,
  "reviewReasons": ["array of reasons if flagged, e.g., 'Image quality poor', 'Text partially obscured'"]
}}"""

USER_PROMPT = (
    "Please analyze this {panel_type} panel image from a cannabis {product_type} product "
    "and extract all compliance-relevant information according to the structure provided."
)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def low_confidence_reasons(confidence: dict[str, Any], threshold: float) -> list[str]:
    """One reason per numeric confidence value under the threshold."""
    return [
        f"Low confidence in {key}: {value * 100:.0f}%"
        for key, value in confidence.items()
        if _is_number(value) and value < threshold
    ]


@dataclass
class Extraction:
    """Extracted label fields plus the review flag."""

    data: dict[str, Any]
    panel_type: PanelType

    @property
    def flagged_for_review(self) -> bool:
        return bool(self.data.get("flaggedForReview"))

    @property
    def parse_error(self) -> bool:
        return bool(self.data.get("parseError"))

    @property
    def confidence_details(self) -> dict[str, Any]:
        value = self.data.get("extractionConfidence")
        return value if isinstance(value, dict) else {}

    @property
    def overall_confidence(self) -> float:
        overall = self.confidence_details.get("overall")
        return float(overall) if _is_number(overall) and overall else DEFAULT_OVERALL_CONFIDENCE


class LabelExtractor:
    """Vision-model extraction of label panels."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        low_confidence_threshold: float | None = None,
    ) -> None:
        self._provider = provider
        self.threshold = (
            low_confidence_threshold
            if low_confidence_threshold is not None
            else settings.compliance.low_confidence_threshold
        )

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_llm_provider(ModelRole.VISION)
        return self._provider

    def apply_review_flags(self, data: dict[str, Any]) -> dict[str, Any]:
        """Set `flaggedForReview` and `reviewReasons` from the confidence scores."""
        confidence = data.get("extractionConfidence")
        confidence = confidence if isinstance(confidence, dict) else {}
        reasons = low_confidence_reasons(confidence, self.threshold)

        supplied = data.get("reviewReasons")
        data["flaggedForReview"] = bool(data.get("flaggedForReview")) or bool(reasons)
        # Reasons supplied by the model take precedence over generated ones
        data["reviewReasons"] = supplied if isinstance(supplied, list) else reasons
        return data

    async def extract(
        self,
        image_data_url: str,
        panel_type: PanelType | str,
        product_type: ProductType | str,
        state_name: str,
    ) -> Extraction:
        """
        Extract label fields from one panel.

        Raises:
            LLMError: vision call failed (429/402 keep their status)
        """
        panel = PanelType(panel_type)
        product = ProductType(product_type)

        logger.info(
            "label_extraction_started",
            panel_type=panel.value,
            product_type=product.value,
            state=state_name,
        )
        reply = await self.provider.generate_text(
            USER_PROMPT.format(panel_type=panel.value, product_type=product.value),
            system_prompt=EXTRACTION_PROMPT.format(
                panel_type=panel.value,
                product_type=product.value,
                state_name=state_name,
            ),
            images=[image_data_url],
        )

        data = extract_json_object(reply)
        if data is None:
            logger.warning("label_extraction_unparseable", panel_type=panel.value)
            data = {"rawTextExtracted": reply, "parseError": True}

        extraction = Extraction(data=self.apply_review_flags(data), panel_type=panel)
        logger.info(
            "label_extraction_completed",
            panel_type=panel.value,
            flagged=extraction.flagged_for_review,
            parse_error=extraction.parse_error,
        )
        return extraction
