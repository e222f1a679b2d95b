"""
Filter config transcoding between the segment builder form and storage.

The form keeps every scalar as a string, uses dollars instead of cents and
has its own operator names ("joining", "has_not_yet_bought", ...). Both
directions are total: unknown input is passed through or dropped, never
raised on.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from audience_segments.schemas.filter_conversion import UIFilter, UIFilterGroup
from audience_segments.schemas.segment import FilterGroupSpec, FilterSpec, FilterType


logger = logging.getLogger(__name__)


# Form operator -> stored operator
UI_TO_API_OPERATORS = {
    "is_more_than": "is_more_than",
    "is_less_than": "is_less_than",
    "is_equal_to": "is",
    "is_not": "is_not",
    "has_bought": "has_bought",
    "has_not_yet_bought": "has_not_bought",
    "joining": "is_after",
    "affiliation": "is_after",
    "following": "is_after",
    "purchase": "is_after",
    "has_opened_in_last": "in_last",
    "has_not_opened_in_last": "not_in_last",
    "is_affiliated_to": "is",
    "is_member_of": "is",
}

API_TO_UI_OPERATORS = {
    "is_more_than": "is_more_than",
    "is_less_than": "is_less_than",
    "is": "is_equal_to",
    "is_not": "is_not",
    "has_bought": "has_bought",
    "has_not_bought": "has_not_yet_bought",
    "is_after": "joining",
    "in_last": "has_opened_in_last",
    "not_in_last": "has_not_opened_in_last",
}

DEFAULT_UI_OPERATOR = "is_equal_to"

# Dollar fields on the form and the cent fields they are stored as
AMOUNT_FIELDS = {
    "amount": "amount_cents",
    "min_amount": "min_amount_cents",
    "max_amount": "max_amount_cents",
}

DEFAULT_THIRD_OPERATORS = {
    FilterType.DATE.value: "is_after",
    FilterType.PRODUCT.value: "all",
}

CENTS = Decimal(100)


def dollars_to_cents(value: Any) -> Optional[int]:
    """'19.999' -> 2000. Half-up rounding; None when unparseable."""
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return int((amount * CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: Any) -> Optional[str]:
    """2500 -> '25', 1999 -> '19.99'."""
    if cents is None or isinstance(cents, bool):
        return None
    try:
        amount = Decimal(str(cents)) / CENTS
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _parse_days(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def ui_filter_to_api(ui_filter: UIFilter) -> FilterSpec:
    """Form filter -> stored ``{filter_type, config}``."""
    config: Dict[str, Any] = {}

    for key, value in ui_filter.value.items():
        if key in AMOUNT_FIELDS:
            cents = dollars_to_cents(value)
            if cents is not None:
                config[AMOUNT_FIELDS[key]] = cents
        elif key == "days":
            days = _parse_days(value)
            if days is not None:
                config["days"] = days
        else:
            config[key] = value

    if ui_filter.operator:
        config["operator"] = UI_TO_API_OPERATORS.get(ui_filter.operator, ui_filter.operator)

    return FilterSpec(filter_type=ui_filter.filter_type, config=config)


def api_filter_to_ui(api_filter: FilterSpec, index: int = 0) -> UIFilter:
    """Stored filter -> form filter. ``index`` decides the leading connector."""
    config = dict(api_filter.config or {})
    operator = config.pop("operator", None)

    value: Dict[str, Any] = {}
    for key, item in config.items():
        if key in AMOUNT_FIELDS.values():
            dollars = cents_to_dollars(item)
            if dollars is not None:
                ui_key = next(k for k, v in AMOUNT_FIELDS.items() if v == key)
                value[ui_key] = dollars
        elif key == "amount":
            # Legacy rows stored dollars under "amount"
            if item is not None:
                value["amount"] = str(item)
        elif key == "days":
            if item is not None:
                value["days"] = str(item)
        else:
            value[key] = item

    ui_operator = API_TO_UI_OPERATORS.get(operator) if isinstance(operator, str) else None

    return UIFilter(
        filter_type=api_filter.filter_type,
        operator=ui_operator or DEFAULT_UI_OPERATOR,
        third_operator=DEFAULT_THIRD_OPERATORS.get(api_filter.filter_type),
        value=value,
        connector=None if index == 0 else "and",
    )


def ui_groups_to_api(groups: List[UIFilterGroup]) -> List[FilterGroupSpec]:
    return [
        FilterGroupSpec(
            name=group.name,
            filters=[ui_filter_to_api(f) for f in group.filters],
        )
        for group in groups
    ]


def api_groups_to_ui(groups: List[FilterGroupSpec]) -> List[UIFilterGroup]:
    return [
        UIFilterGroup(
            name=group.name,
            filters=[api_filter_to_ui(f, index) for index, f in enumerate(group.filters)],
        )
        for group in groups
    ]
