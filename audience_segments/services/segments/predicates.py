"""
Filter predicates.

Turns one ``(filter_type, config)`` pair into a SQL condition over
``audience_members``. Conditions compose: a filter group ANDs them, a
segment ORs the groups.

Malformed configs never raise here. An unknown type or operator, a missing
operand or an unparseable date yields ``false()``, so the filter contributes
no matches instead of aborting the whole segment.

Purchases live in the ``details`` JSON blob; product and location filters
look inside it with ``json_each`` (SQLite) or ``json_array_elements``
(PostgreSQL).
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import String, and_, cast, false, func, select
from sqlalchemy.sql.elements import ColumnElement

from audience_segments.models.audience_member import AudienceMember
from audience_segments.schemas.segment import (
    FilterType,
    DateOperator,
    ProductOperator,
    PaymentOperator,
    LocationOperator,
    EmailEngagementOperator,
)
from audience_segments.services.segments.filter_schemas import MAX_CENTS, parse_filter_date


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how audience timestamps are stored."""
    return datetime.utcnow()


def _cents_or_none(value: Any) -> Optional[int]:
    """Integer that fits the paid-cents columns, else None."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if not -MAX_CENTS - 1 <= value <= MAX_CENTS:
        return None
    return value


def _purchase_elements(dialect_name: str):
    """Table-valued view of ``details.purchases`` for the current row.

    Returns (alias, product_id expression, country expression).
    """
    if dialect_name == "postgresql":
        purchase = func.json_array_elements(AudienceMember.details["purchases"]).table_valued(
            "value", name="purchase", joins_implicitly=True
        )
        return (
            purchase,
            purchase.c.value.op("->>")("product_id"),
            purchase.c.value.op("->>")("country"),
        )

    purchase = func.json_each(AudienceMember.details, "$.purchases").table_valued(
        "value", name="purchase", joins_implicitly=True
    )
    return (
        purchase,
        cast(func.json_extract(purchase.c.value, "$.product_id"), String),
        func.json_extract(purchase.c.value, "$.country"),
    )


def _has_purchase(dialect_name: str, match: Callable[[Any, Any], ColumnElement]) -> ColumnElement:
    """EXISTS a purchase record satisfying ``match(product_id, country)``."""
    purchase, product_id, country = _purchase_elements(dialect_name)
    return select(purchase.c.value).where(match(product_id, country)).exists()


def date_condition(config: Dict[str, Any], dialect_name: str, now: datetime) -> ColumnElement:
    operator = config.get("operator")
    try:
        if operator == DateOperator.IS_AFTER:
            day = parse_filter_date(config.get("date"))
            return AudienceMember.min_created_at >= datetime.combine(day, time.min)
        elif operator == DateOperator.IS_BEFORE:
            day = parse_filter_date(config.get("date"))
            return AudienceMember.max_created_at <= datetime.combine(day, time.max)
        elif operator == DateOperator.BETWEEN:
            start = parse_filter_date(config.get("start_date"))
            end = parse_filter_date(config.get("end_date"))
            return AudienceMember.min_created_at.between(
                datetime.combine(start, time.min),
                datetime.combine(end, time.max),
            )
    except (TypeError, ValueError):
        logger.debug(f"Unparseable date in filter config: {config}")
        return false()
    return false()


def product_condition(config: Dict[str, Any], dialect_name: str, now: datetime) -> ColumnElement:
    operator = config.get("operator")
    product_ids = config.get("product_ids")

    if not product_ids or not isinstance(product_ids, list):
        return false()

    wanted = [str(product_id) for product_id in product_ids]
    bought = _has_purchase(dialect_name, lambda product_id, _country: product_id.in_(wanted))

    if operator == ProductOperator.HAS_BOUGHT:
        return bought
    elif operator == ProductOperator.HAS_NOT_BOUGHT:
        return ~bought
    return false()


def payment_condition(config: Dict[str, Any], dialect_name: str, now: datetime) -> ColumnElement:
    operator = config.get("operator")

    if operator == PaymentOperator.IS_MORE_THAN:
        amount = _cents_or_none(config.get("amount_cents"))
        if amount is None:
            return false()
        return AudienceMember.max_paid_cents > amount
    elif operator == PaymentOperator.IS_LESS_THAN:
        amount = _cents_or_none(config.get("amount_cents"))
        if amount is None:
            return false()
        return AudienceMember.min_paid_cents < amount
    elif operator == PaymentOperator.IS_BETWEEN:
        low = _cents_or_none(config.get("min_amount_cents"))
        high = _cents_or_none(config.get("max_amount_cents"))
        if low is None or high is None:
            return false()
        return and_(
            AudienceMember.min_paid_cents.between(low, high),
            AudienceMember.max_paid_cents.between(low, high),
        )
    return false()


def location_condition(config: Dict[str, Any], dialect_name: str, now: datetime) -> ColumnElement:
    operator = config.get("operator")
    country = config.get("country")

    if not country or not isinstance(country, str):
        return false()

    bought_from = _has_purchase(dialect_name, lambda _product_id, purchase_country: purchase_country == country)

    if operator == LocationOperator.IS:
        return bought_from
    elif operator == LocationOperator.IS_NOT:
        return ~bought_from
    return false()


def email_engagement_condition(config: Dict[str, Any], dialect_name: str, now: datetime) -> ColumnElement:
    """Engagement proxy: last activity on the audience row.

    Open/click tracking is not available to this service, so ``updated_at``
    stands in for "last engaged".
    """
    operator = config.get("operator")
    days = config.get("days")

    if days is None or isinstance(days, bool) or days == "":
        return false()
    try:
        cutoff = now - timedelta(days=int(days))
    except (TypeError, ValueError, OverflowError):
        return false()

    if operator == EmailEngagementOperator.IN_LAST:
        return AudienceMember.updated_at >= cutoff
    elif operator == EmailEngagementOperator.NOT_IN_LAST:
        return AudienceMember.updated_at < cutoff
    return false()


CONDITION_BUILDERS: Dict[FilterType, Callable[[Dict[str, Any], str, datetime], ColumnElement]] = {
    FilterType.DATE: date_condition,
    FilterType.PRODUCT: product_condition,
    FilterType.PAYMENT: payment_condition,
    FilterType.LOCATION: location_condition,
    FilterType.EMAIL_ENGAGEMENT: email_engagement_condition,
}


def build_filter_condition(
    filter_type: Any,
    config: Any,
    dialect_name: str = "sqlite",
    now: Optional[datetime] = None,
) -> ColumnElement:
    """
    Build the SQL condition for a single filter.

    Args:
        filter_type: One of the FilterType values
        config: Operator and operands
        dialect_name: SQLAlchemy dialect the condition will run on
        now: Reference time for relative filters (defaults to utcnow)

    Returns:
        Boolean SQL expression; ``false()`` for anything malformed
    """
    if not isinstance(config, dict):
        return false()

    try:
        builder = CONDITION_BUILDERS.get(FilterType(filter_type))
    except ValueError:
        builder = None

    if builder is None:
        logger.debug(f"Unknown filter type {filter_type!r}, matching nothing")
        return false()

    return builder(config, dialect_name, now or utcnow())
