"""
Photo analyzer for citizen and sweeper uploads
Asks the image oracle for a judgement and turns its free-text answer into
typed, normalized results
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from wastewatch.core.constants import (
    DRY_WASTE_HINTS,
    NOT_CLEAN_LEVEL,
    VALID_CLASSIFICATIONS,
    VALID_SEVERITIES,
    WET_WASTE_HINTS,
)
from wastewatch.core.errors import OracleResponseError
from wastewatch.crowdsource.prompts import COMPARISON_PROMPT, INTAKE_PROMPT
from wastewatch.ingestion.gemini_client import GeminiClient, ImagePart
from wastewatch.ingestion.storage_client import StorageClient

logger = logging.getLogger(__name__)

JudgementT = TypeVar("JudgementT", bound="OracleJudgement")

INTAKE_KEYS = (
    "imageValid", "isRealPhoto", "wasteDetected", "wasteType", "wasteAmount",
    "classification", "severity", "isFake", "confidence", "description",
)
INTAKE_REQUIRED_KEYS = ("imageValid", "isRealPhoto", "isFake", "wasteDetected", "confidence")

COMPARISON_KEYS = (
    "sameLocation", "cleaned", "cleanlinessLevel", "remainingWaste",
    "cleaningQuality", "afterIsCleaner", "suspicious", "suspiciousReason",
    "confidence", "description",
)
COMPARISON_REQUIRED_KEYS = ("sameLocation", "cleaned")

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class ParseStatus(Enum):
    """Outcome of reading an oracle answer."""
    OK = "ok"
    PARSE_FAILED = "parse_failed"


@dataclass
class ParsedResponse:
    """Tagged result of parsing raw oracle text."""
    status: ParseStatus
    data: Dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""
    method: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ParseStatus.OK


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a JSON answer."""
    return _CODE_FENCE.sub("", text).strip()


def first_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` substring, ignoring braces inside
    string literals.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def infer_fields(text: str, keys: Sequence[str]) -> Dict[str, Any]:
    """
    Recover ``key: value`` pairs from text that is not valid JSON.

    Values may be quoted strings, booleans, null or numbers; keys may or may
    not be quoted.
    """
    recovered: Dict[str, Any] = {}
    for key in keys:
        pattern = re.compile(
            r'["\']?' + re.escape(key) + r'["\']?\s*[:=]\s*'
            r'("(?P<dq>[^"]*)"|\'(?P<sq>[^\']*)\'|(?P<bare>true|false|null|-?\d+(?:\.\d+)?))',
            re.IGNORECASE,
        )
        match = pattern.search(text)
        if not match:
            continue

        if match.group("dq") is not None:
            recovered[key] = match.group("dq")
        elif match.group("sq") is not None:
            recovered[key] = match.group("sq")
        else:
            bare = match.group("bare").lower()
            if bare in ("true", "false"):
                recovered[key] = bare == "true"
            elif bare == "null":
                recovered[key] = None
            else:
                recovered[key] = float(bare)
    return recovered


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_oracle_response(
    text: str,
    keys: Sequence[str] = INTAKE_KEYS,
    required_keys: Sequence[str] = INTAKE_REQUIRED_KEYS
) -> ParsedResponse:
    """
    Parse raw oracle text into a mapping.

    Tries, in order: the fence-stripped text as JSON, the first balanced
    ``{...}`` substring, then a single regex recovery pass over ``keys``
    which succeeds only if every key in ``required_keys`` was found.

    Args:
        text: Raw model answer
        keys: Keys to recover in the inference pass
        required_keys: Keys the inference pass must find

    Returns:
        ParsedResponse tagged OK or PARSE_FAILED
    """
    raw_text = text or ""
    cleaned = strip_code_fences(raw_text)

    data = _load_object(cleaned)
    if data is not None:
        return ParsedResponse(ParseStatus.OK, data, raw_text, method="json")

    candidate = first_balanced_object(cleaned)
    if candidate is not None:
        data = _load_object(candidate)
        if data is not None:
            return ParsedResponse(ParseStatus.OK, data, raw_text, method="embedded")

    data = infer_fields(cleaned, keys)
    if data and all(key in data for key in required_keys):
        logger.warning(f"Oracle answer was not JSON; recovered fields {sorted(data)}")
        return ParsedResponse(ParseStatus.OK, data, raw_text, method="inferred")

    return ParsedResponse(ParseStatus.PARSE_FAILED, {}, raw_text)


def to_optional_bool(value: Any) -> Optional[bool]:
    """Real booleans and "true"/"false" strings; anything else is unknown."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
    return None


def to_confidence(value: Any) -> float:
    """Clamp a confidence to [0, 1]; malformed values become 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(1.0, max(0.0, number))


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def infer_classification(waste_type: Any) -> str:
    """
    Guess dry/wet/mixed from the oracle's free-text ``wasteType``.

    Organic hints -> wet, recyclable hints -> dry, both or "mixed" -> mixed,
    "none" -> none, otherwise unknown.
    """
    if not isinstance(waste_type, str) or not waste_type.strip():
        return "unknown"

    lowered = waste_type.strip().lower()
    if lowered == "none":
        return "none"
    if "mixed" in lowered:
        return "mixed"

    wet = any(hint in lowered for hint in WET_WASTE_HINTS)
    dry = any(hint in lowered for hint in DRY_WASTE_HINTS)
    if wet and dry:
        return "mixed"
    if wet:
        return "wet"
    if dry:
        return "dry"
    return "unknown"


def normalize_classification(classification: Any, waste_type: Any) -> str:
    """Constrain to dry/wet/mixed/none, inferring from wasteType when absent."""
    if classification is None or (isinstance(classification, str) and not classification.strip()):
        inferred = infer_classification(waste_type)
        logger.info(f"Classification missing, inferred {inferred!r} from wasteType {waste_type!r}")
        return inferred

    lowered = str(classification).strip().lower()
    if lowered in VALID_CLASSIFICATIONS:
        return lowered

    logger.warning(f"Invalid classification from oracle: {classification!r}")
    return "unknown"


class OracleJudgement(BaseModel):
    """
    Base for oracle answers.

    Fields are read by their camelCase answer keys (or by name); unknown keys
    are ignored and the answer mapping itself is kept in ``raw``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    confidence: float = 0.0
    description: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _keep_raw(cls, data: Any) -> Any:
        if isinstance(data, dict):
            answer = {key: value for key, value in data.items() if key != "raw"}
            data = dict(answer, raw=answer)
        return data

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return to_confidence(value)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: Any) -> str:
        return _text(value, "")


class IntakeJudgement(OracleJudgement):
    """Normalized single-image judgement of a before photo."""
    image_valid: Optional[bool] = Field(default=None, alias="imageValid")
    is_real_photo: Optional[bool] = Field(default=None, alias="isRealPhoto")
    is_fake: bool = Field(default=False, alias="isFake")
    waste_detected: str = Field(default="no", alias="wasteDetected")
    waste_type: str = Field(default="unknown", alias="wasteType")
    waste_amount: str = Field(default="unknown", alias="wasteAmount")
    classification: Optional[str] = Field(default=None, validate_default=True)
    severity: str = "none"

    @field_validator("image_valid", "is_real_photo", mode="before")
    @classmethod
    def _optional_bool(cls, value: Any) -> Optional[bool]:
        return to_optional_bool(value)

    @field_validator("is_fake", mode="before")
    @classmethod
    def _is_fake(cls, value: Any) -> bool:
        is_fake = to_optional_bool(value)
        if is_fake is None:
            logger.warning(f"Oracle isFake is not boolean: {value!r}")
            return False
        return is_fake

    @field_validator("waste_detected", mode="before")
    @classmethod
    def _yes_no(cls, value: Any) -> str:
        if isinstance(value, bool):
            return "yes" if value else "no"
        answer = str(value).strip().lower() if value is not None else ""
        if answer not in ("yes", "no"):
            logger.warning(f"Oracle wasteDetected is not yes/no: {value!r}")
            return "no"
        return answer

    @field_validator("waste_type", "waste_amount", mode="before")
    @classmethod
    def _unknown_if_blank(cls, value: Any) -> str:
        return _text(value, "unknown")

    # Declared after waste_type so the validated wasteType is available
    @field_validator("classification", mode="before")
    @classmethod
    def _classification(cls, value: Any, info: ValidationInfo) -> str:
        return normalize_classification(value, info.data.get("waste_type"))

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, value: Any) -> str:
        severity = str(value or "none").strip().lower()
        return severity if severity in VALID_SEVERITIES else "none"

    @property
    def has_waste(self) -> bool:
        return self.waste_detected == "yes"

    def to_fields(self) -> Dict[str, Any]:
        """Audit fields persisted on the report."""
        return {
            "imageValid": self.image_valid,
            "isRealPhoto": self.is_real_photo,
            "isFake": self.is_fake,
            "wasteDetected": self.waste_detected,
            "wasteType": self.waste_type,
            "wasteAmount": self.waste_amount,
            "classification": self.classification,
            "level": self.severity,
            "aiConfidence": self.confidence,
            "aiDescription": self.description,
        }


class ComparisonJudgement(OracleJudgement):
    """Normalized before/after judgement of a cleanup."""
    same_location: Optional[bool] = Field(default=None, alias="sameLocation")
    cleaned: Optional[bool] = None
    cleanliness_level: str = Field(default="unknown", alias="cleanlinessLevel")
    remaining_waste: Optional[bool] = Field(default=None, alias="remainingWaste")
    cleaning_quality: str = Field(default="unknown", alias="cleaningQuality")
    after_is_cleaner: Optional[bool] = Field(default=None, alias="afterIsCleaner")
    suspicious: Optional[bool] = None
    suspicious_reason: str = Field(default="", alias="suspiciousReason")

    @field_validator(
        "same_location", "cleaned", "remaining_waste", "after_is_cleaner", "suspicious",
        mode="before",
    )
    @classmethod
    def _optional_bool(cls, value: Any) -> Optional[bool]:
        return to_optional_bool(value)

    @field_validator("cleanliness_level", "cleaning_quality", mode="before")
    @classmethod
    def _level(cls, value: Any) -> str:
        return _text(value, "unknown").lower()

    @field_validator("suspicious_reason", mode="before")
    @classmethod
    def _reason(cls, value: Any) -> str:
        return _text(value, "")

    @property
    def not_clean(self) -> bool:
        return self.cleanliness_level == NOT_CLEAN_LEVEL

    def to_fields(self) -> Dict[str, Any]:
        """Audit fields persisted on the report."""
        return {
            "cleaningQuality": self.cleaning_quality,
            "cleanlinessLevel": self.cleanliness_level,
            "aiComparisonConfidence": self.confidence,
            "aiComparisonDescription": self.description,
            "afterIsCleaner": self.after_is_cleaner,
            "suspicious": self.suspicious,
            "suspiciousReason": self.suspicious_reason,
        }


class PhotoAnalyzer:
    """
    Judges before and after photos with the image oracle.

    Usage:
        analyzer = PhotoAnalyzer(storage=StorageClient(), oracle=GeminiClient(api_key))
        judgement = analyzer.analyze_intake("gs://bucket/reports/u1/1700000000000_before.jpg")
    """

    def __init__(self, storage: StorageClient, oracle: GeminiClient):
        """
        Initialize photo analyzer.

        Args:
            storage: Resolves image references to bytes
            oracle: Vision-language model client
        """
        self.storage = storage
        self.oracle = oracle

    def _load(self, reference: str) -> ImagePart:
        data, mime_type = self.storage.resolve(reference)
        return ImagePart(data=data, mime_type=mime_type)

    def _ask(
        self,
        images: Sequence[ImagePart],
        prompt: str,
        schema: Type[JudgementT],
        keys: Sequence[str],
        required_keys: Sequence[str]
    ) -> JudgementT:
        text = self.oracle.judge(images, prompt)
        logger.debug(f"Oracle raw response: {text[:500]}")

        parsed = parse_oracle_response(text, keys, required_keys)
        if not parsed.ok:
            logger.error(f"Could not parse oracle response: {text[:200]!r}")
            raise OracleResponseError("Could not parse oracle response as JSON", raw_text=text)
        try:
            return schema.model_validate(parsed.data)
        except ValidationError as e:
            logger.error(f"Oracle answer does not fit {schema.__name__}: {e}")
            raise OracleResponseError(
                f"Oracle answer does not fit {schema.__name__}", raw_text=text, original_exception=e
            )

    def analyze_intake(self, image_ref: str) -> IntakeJudgement:
        """
        Judge a citizen's before photo.

        Raises:
            ReferenceResolutionError, StorageUnavailableError: Image fetch failed
            OracleUnavailableError: Oracle call failed
            OracleResponseError: Answer could not be parsed
        """
        image = self._load(image_ref)
        judgement = self._ask([image], INTAKE_PROMPT, IntakeJudgement, INTAKE_KEYS, INTAKE_REQUIRED_KEYS)

        logger.info(
            f"Intake judgement: wasteDetected={judgement.waste_detected} "
            f"classification={judgement.classification} isFake={judgement.is_fake} "
            f"confidence={judgement.confidence:.2f}"
        )
        return judgement

    def compare_cleanup(self, before_ref: str, after_ref: str) -> ComparisonJudgement:
        """
        Judge a before/after pair. The before image is always sent first.

        Raises:
            ReferenceResolutionError, StorageUnavailableError: Image fetch failed
            OracleUnavailableError: Oracle call failed
            OracleResponseError: Answer could not be parsed
        """
        before = self._load(before_ref)
        after = self._load(after_ref)
        judgement = self._ask(
            [before, after], COMPARISON_PROMPT, ComparisonJudgement,
            COMPARISON_KEYS, COMPARISON_REQUIRED_KEYS,
        )

        logger.info(
            f"Comparison judgement: sameLocation={judgement.same_location} "
            f"cleaned={judgement.cleaned} level={judgement.cleanliness_level} "
            f"suspicious={judgement.suspicious}"
        )
        return judgement
