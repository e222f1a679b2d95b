"""
Filter config validation.

One pydantic model per filter type describes the allowed config keys and
their types; ``REQUIRED_FIELDS`` adds the per-operator operands. Validation
runs when a filter is written (segment create/update) and when an AI answer
is accepted. Evaluation never validates: it fails closed instead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from audience_segments.schemas.segment import (
    FilterType,
    DateOperator,
    ProductOperator,
    PaymentOperator,
    LocationOperator,
    EmailEngagementOperator,
)


logger = logging.getLogger(__name__)


# Paid-cents columns are 32-bit INTEGER
MAX_CENTS = 2**31 - 1


class MalformedFilterError(Exception):
    """A filter config does not match the schema of its filter type."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        super().__init__("; ".join(f"{e['field']}: {e['message']}" for e in errors))


class _FilterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DateFilterConfig(_FilterConfig):
    operator: DateOperator
    date: Optional[StrictStr] = None
    start_date: Optional[StrictStr] = None
    end_date: Optional[StrictStr] = None


class ProductFilterConfig(_FilterConfig):
    operator: ProductOperator
    product_ids: Optional[List[Union[StrictStr, StrictInt]]] = Field(None, min_length=1)


class PaymentFilterConfig(_FilterConfig):
    operator: PaymentOperator
    amount_cents: Optional[StrictInt] = Field(None, ge=0, le=MAX_CENTS)
    min_amount_cents: Optional[StrictInt] = Field(None, ge=0, le=MAX_CENTS)
    max_amount_cents: Optional[StrictInt] = Field(None, ge=0, le=MAX_CENTS)


class LocationFilterConfig(_FilterConfig):
    operator: LocationOperator
    country: Optional[StrictStr] = Field(None, min_length=1)
    region: Optional[StrictStr] = None
    city: Optional[StrictStr] = None


class EmailEngagementFilterConfig(_FilterConfig):
    operator: EmailEngagementOperator
    days: Optional[StrictInt] = Field(None, gt=0)
    engagement_type: Optional[StrictStr] = None


FilterConfig = Union[
    DateFilterConfig,
    ProductFilterConfig,
    PaymentFilterConfig,
    LocationFilterConfig,
    EmailEngagementFilterConfig,
]

CONFIG_MODELS: Dict[FilterType, type[_FilterConfig]] = {
    FilterType.DATE: DateFilterConfig,
    FilterType.PRODUCT: ProductFilterConfig,
    FilterType.PAYMENT: PaymentFilterConfig,
    FilterType.LOCATION: LocationFilterConfig,
    FilterType.EMAIL_ENGAGEMENT: EmailEngagementFilterConfig,
}

# Operands each operator needs on top of the operator itself
REQUIRED_FIELDS: Dict[str, tuple[str, ...]] = {
    DateOperator.IS_AFTER.value: ("date",),
    DateOperator.IS_BEFORE.value: ("date",),
    DateOperator.BETWEEN.value: ("start_date", "end_date"),
    ProductOperator.HAS_BOUGHT.value: ("product_ids",),
    ProductOperator.HAS_NOT_BOUGHT.value: ("product_ids",),
    PaymentOperator.IS_MORE_THAN.value: ("amount_cents",),
    PaymentOperator.IS_LESS_THAN.value: ("amount_cents",),
    PaymentOperator.IS_BETWEEN.value: ("min_amount_cents", "max_amount_cents"),
    LocationOperator.IS.value: ("country",),
    LocationOperator.IS_NOT.value: ("country",),
    EmailEngagementOperator.IN_LAST.value: ("days",),
    EmailEngagementOperator.NOT_IN_LAST.value: ("days",),
}

DATE_FIELDS = ("date", "start_date", "end_date")


def parse_filter_date(value: Any):
    """Parse an ISO date (or datetime) string into a ``date``.

    Raises ValueError/TypeError for anything else.
    """
    if not isinstance(value, str):
        raise TypeError(f"expected a date string, got {type(value).__name__}")
    return datetime.fromisoformat(value.strip()).date()


def _error(field: str, message: str, error_type: str) -> Dict[str, Any]:
    return {"field": field, "message": message, "type": error_type}


def validate_filter(filter_type: Any, config: Any) -> FilterConfig:
    """
    Validate one filter against the schema of its type.

    Args:
        filter_type: Filter type name
        config: Operator plus operands

    Returns:
        The parsed config model

    Raises:
        MalformedFilterError: with field-level errors relative to the filter
    """
    try:
        ftype = FilterType(filter_type)
    except ValueError:
        allowed = ", ".join(t.value for t in FilterType)
        raise MalformedFilterError(
            [_error("filter_type", f"must be one of: {allowed}", "enum")]
        )

    if not isinstance(config, dict):
        raise MalformedFilterError([_error("config", "must be an object", "dict_type")])

    try:
        parsed = CONFIG_MODELS[ftype].model_validate(config)
    except PydanticValidationError as e:
        raise MalformedFilterError([
            _error(
                ".".join(["config", *(str(loc) for loc in err["loc"])]),
                err["msg"],
                err["type"],
            )
            for err in e.errors()
        ])

    errors = []
    operator = parsed.operator.value
    for field_name in REQUIRED_FIELDS.get(operator, ()):
        if getattr(parsed, field_name) in (None, "", []):
            errors.append(_error(
                f"config.{field_name}",
                f"is required for operator '{operator}'",
                "missing",
            ))

    for field_name in DATE_FIELDS:
        value = getattr(parsed, field_name, None)
        if value:
            try:
                parse_filter_date(value)
            except (TypeError, ValueError):
                errors.append(_error(f"config.{field_name}", "is not a valid ISO date", "date_parsing"))

    if isinstance(parsed, PaymentFilterConfig) and not errors and parsed.operator == PaymentOperator.IS_BETWEEN:
        if parsed.min_amount_cents > parsed.max_amount_cents:
            errors.append(_error(
                "config.min_amount_cents",
                "must not be greater than max_amount_cents",
                "value_error",
            ))

    if errors:
        raise MalformedFilterError(errors)

    return parsed


def normalize_config(parsed: FilterConfig) -> Dict[str, Any]:
    """Storage form of a validated config: enums as strings, unset keys dropped."""
    return parsed.model_dump(mode="json", exclude_none=True)
