"""
Structured analysis input supplied by an upstream classifier.

The upstream service is not trusted to send a complete or well-typed
document. Every field is optional, `None` becomes an empty list, a bare
string becomes a one-element list, and non-string list entries are dropped.
A payload that still fails validation is treated as empty.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from honeytrack.core.logging import get_logger

logger = get_logger(__name__)

# label the upstream extractor uses when it has no classification
UNKNOWN_LABEL = "UNKNOWN"


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _as_optional_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.upper() in (UNKNOWN_LABEL, "NONE", "NULL"):
        return None
    return value


class ExtractionPayload(BaseModel):
    """Per-message extraction block of the structured analysis."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    links: List[str] = Field(default_factory=list)
    phoneNumbers: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    bankAccounts: List[str] = Field(default_factory=list)
    paymentHandles: List[str] = Field(default_factory=list)
    upiIds: List[str] = Field(default_factory=list)
    suspiciousKeywords: List[str] = Field(default_factory=list)
    requestedData: List[str] = Field(default_factory=list)
    attackMethod: List[str] = Field(default_factory=list)
    impersonatedEntity: Optional[str] = None
    scamType: Optional[str] = None

    @field_validator(
        "links", "phoneNumbers", "emails", "bankAccounts", "paymentHandles",
        "upiIds", "suspiciousKeywords", "requestedData", "attackMethod",
        mode="before",
    )
    @classmethod
    def _coerce_list(cls, value):
        return _as_string_list(value)

    @field_validator("impersonatedEntity", "scamType", mode="before")
    @classmethod
    def _coerce_scalar(cls, value):
        return _as_optional_string(value)

    @property
    def all_payment_handles(self) -> List[str]:
        """Payment handles, including the UPI-specific spelling."""
        return self.paymentHandles + [h for h in self.upiIds if h not in self.paymentHandles]


class StructuredAnalysis(BaseModel):
    """Structured analysis document from the upstream classifier."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    scamTypes: List[str] = Field(default_factory=list)
    isScam: bool = False
    psychologicalTechniques: List[str] = Field(default_factory=list)
    extraction: ExtractionPayload = Field(default_factory=ExtractionPayload)

    @field_validator("scamTypes", "psychologicalTechniques", mode="before")
    @classmethod
    def _coerce_list(cls, value):
        return _as_string_list(value)

    @field_validator("isScam", mode="before")
    @classmethod
    def _coerce_flag(cls, value):
        return value is True or (isinstance(value, str) and value.lower() == "true")

    @field_validator("extraction", mode="before")
    @classmethod
    def _coerce_extraction(cls, value):
        return value if isinstance(value, (dict, ExtractionPayload)) else {}

    @property
    def all_scam_types(self) -> List[str]:
        """Scam type labels from both the top level and the extraction block."""
        labels = list(self.scamTypes)
        if self.extraction.scamType and self.extraction.scamType not in labels:
            labels.append(self.extraction.scamType)
        return labels

    @classmethod
    def parse_lenient(cls, payload: Any) -> "StructuredAnalysis":
        """
        Parse an untrusted analysis payload without raising.

        Args:
            payload: Dict, existing StructuredAnalysis, or anything else

        Returns:
            StructuredAnalysis: Parsed analysis, empty when unusable
        """
        if isinstance(payload, cls):
            return payload
        if not isinstance(payload, dict):
            if payload is not None:
                logger.warning(
                    "Ignoring structured analysis of unexpected type",
                    extra={"payload_type": type(payload).__name__},
                )
            return cls()
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "Structured analysis failed validation, treating as empty",
                extra={"error_count": e.error_count()},
            )
            return cls()
