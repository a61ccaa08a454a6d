"""
Query filter model for tender listings.

Raw query parameters are untrusted. They are validated with pydantic and
normalized into an immutable ``CanonicalFilterSet``. Malformed listing input is
never rejected: the whole request falls back to the default page, limit and an
empty filter set. Only malformed detail codes raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError
from shared.logging import get_logger


MAX_TEXT_LENGTH = 160
MAX_SEARCH_LENGTH = 200
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MIN_FISCAL_YEAR = 2000
MAX_FISCAL_YEAR = 2100

_WHITESPACE = re.compile(r"\s+")
# Control characters that \s does not already cover
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0e-\x1b\x7f]")
_TENDER_CODE = re.compile(r"^\d{1,32}$")

logger = get_logger("tenders.filters")


def sanitize_input(value: Any, max_length: int = MAX_TEXT_LENGTH) -> Optional[str]:
    """Strip control characters, collapse whitespace, trim and cap a free-text value.

    Returns None for values that are empty after cleaning.
    """
    if value is None:
        return None

    text = _WHITESPACE.sub(" ", _CONTROL_CHARS.sub("", str(value))).strip()
    if not text:
        return None
    return text[:max_length].rstrip() or None


@dataclass(frozen=True)
class CanonicalFilterSet:
    """Validated, normalized listing filters. Unset filters are None."""

    search: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    source_id: Optional[int] = None
    fiscal_year: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.__dataclass_fields__)


@dataclass(frozen=True)
class TenderQuery:
    """Pagination plus filters for one listing request."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    filters: CanonicalFilterSet = field(default_factory=CanonicalFilterSet)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


class TenderQueryParams(BaseModel):
    """Wire-level listing parameters."""

    model_config = ConfigDict(extra="ignore")

    page: int = Field(default=DEFAULT_PAGE, ge=1)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    search: Optional[str] = None
    category: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("category", "kategori")
    )
    status: Optional[str] = None
    min_value: Optional[float] = Field(
        default=None,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("minValue", "min_value", "nilai_min"),
    )
    max_value: Optional[float] = Field(
        default=None,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("maxValue", "max_value", "nilai_max"),
    )
    source_id: Optional[int] = Field(
        default=None, gt=0, validation_alias=AliasChoices("sourceId", "source_id", "lpse_id")
    )
    fiscal_year: Optional[int] = Field(
        default=None,
        ge=MIN_FISCAL_YEAR,
        le=MAX_FISCAL_YEAR,
        validation_alias=AliasChoices("fiscalYear", "fiscal_year", "tahun"),
    )


def parse_tender_query(params: Mapping[str, Any]) -> TenderQuery:
    """Build a ``TenderQuery`` from raw query parameters."""
    raw = {
        key: value
        for key, value in params.items()
        if value is not None and str(value).strip() != ""
    }

    try:
        parsed = TenderQueryParams.model_validate(raw)
    except PydanticValidationError as exc:
        logger.debug(
            "Invalid listing parameters, falling back to defaults",
            errors=[error.get("loc") for error in exc.errors()],
        )
        return TenderQuery()

    min_value, max_value = parsed.min_value, parsed.max_value
    if min_value is not None and max_value is not None and min_value > max_value:
        min_value, max_value = max_value, min_value

    filters = CanonicalFilterSet(
        search=sanitize_input(parsed.search, MAX_SEARCH_LENGTH),
        category=sanitize_input(parsed.category),
        status=sanitize_input(parsed.status),
        min_value=min_value,
        max_value=max_value,
        source_id=parsed.source_id,
        fiscal_year=parsed.fiscal_year,
    )
    return TenderQuery(page=parsed.page, limit=parsed.limit, filters=filters)


def parse_tender_code(value: Any) -> str:
    """Validate a detail-path tender code. Codes are digit strings."""
    code = str(value or "").strip()
    if not _TENDER_CODE.match(code):
        raise ValidationError("Invalid tender code format", details={"code": code[:64]})
    return code
