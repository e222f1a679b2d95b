"""
AI segment generation.

Turns a free-text audience description ("customers who spent more than $50
in the last month") into filter groups plus a suggested segment name.

Lifecycle of one ``generate`` call::

    IDLE -> REQUESTING -> VALIDATING -> ACCEPTED
                                     -> REJECTED
                       -> FAILED

Only the completion request is retried (transport errors, timeouts, 429 and
5xx). An answer that does not validate is rejected straight away. Raw error
text is logged; callers only ever see the messages in ``USER_MESSAGES``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from audience_segments.config import settings
from audience_segments.schemas.segment import FilterType
from audience_segments.services.ai_gateway import AIGateway, ChatMessage, CompletionError
from audience_segments.services.segments.filter_schemas import MalformedFilterError, validate_filter


logger = logging.getLogger(__name__)

T = TypeVar("T")


SYSTEM_PROMPT = """You are a JSON generator for email marketing segments.
You MUST return ONLY valid JSON, no explanations or markdown.

Available filter types:
- payment: Filter by payment amounts
- date: Filter by dates
- product: Filter by products purchased
- location: Filter by geographic location
- email_engagement: Filter by email engagement

Payment operators: "is_more_than", "is_less_than", "is_between"
Date operators: "is_after", "is_before", "between"
Product operators: "has_bought", "has_not_bought"
Location operators: "is", "is_not"
Email operators: "in_last", "not_in_last"

EXACT JSON FORMAT REQUIRED:
{
  "filter_groups": [
    {
      "name": "High Value Customers",
      "filters": [
        {
          "filter_type": "payment",
          "config": {
            "operator": "is_more_than",
            "amount_cents": 10000
          }
        },
        {
          "filter_type": "product",
          "config": {
            "operator": "has_bought",
            "product_ids": ["12345"]
          }
        }
      ]
    }
  ]
}

For product filters, ALWAYS use "product_ids" as an array of strings.
For payment filters with "is_between", use "min_amount_cents" and "max_amount_cents".
For date filters use "date" (YYYY-MM-DD), or "start_date" and "end_date" with "between".
For location filters, use "country" field.
For email engagement filters, use "days" field.
Convert dollars to cents (multiply by 100).
Return ONLY the JSON above, nothing else."""

NAME_SYSTEM_PROMPT = (
    "You are a marketing strategist. Create concise, actionable segment names (2-4 words) "
    "that clearly communicate the audience's value and purpose. Focus on business outcomes "
    "and marketing intent. Examples: 'VIP Customers', 'Growth Prospects', 'Win-Back Targets', "
    "'Premium Buyers', 'Engagement Ready'."
)

FILTER_TEMPERATURE = 0.2
FILTER_MAX_TOKENS = 500
NAME_TEMPERATURE = 0.3
NAME_MAX_TOKENS = 20


class GenerationState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


class GenerationErrorKind(str, Enum):
    DESCRIPTION_REQUIRED = "description_required"
    INVALID_RESPONSE = "invalid_response"
    SERVICE_UNAVAILABLE = "service_unavailable"


USER_MESSAGES = {
    GenerationErrorKind.DESCRIPTION_REQUIRED: "Description is required",
    GenerationErrorKind.INVALID_RESPONSE: (
        "I couldn't understand that request. Try being more specific about the criteria "
        "you want, like 'customers who spent more than $50' or 'subscribers who joined "
        "in the last 30 days'."
    ),
    GenerationErrorKind.SERVICE_UNAVAILABLE: (
        "The AI service is temporarily unavailable. Please try again in a moment "
        "or create your segment manually."
    ),
}


# Ordered: the first rule with a matching word wins
NAME_RULES = [
    ("VIP Customers", [r"vip|premium|high.*value|expensive|luxury"]),
    ("New Subscribers", [r"new|recent|fresh|latest", r"subscriber|follow"]),
    ("Win-Back Targets", [r"win.*back|return|inactive|dormant"]),
    ("Global Audience", [r"international|global|foreign|overseas"]),
    ("Growth Prospects", [r"potential|prospect|haven.*bought|not.*purchase"]),
    ("Loyal Customers", [r"loyal|long.*term|repeat"]),
    ("Engaged Users", [r"engage|active|frequent"]),
    ("Budget Segment", [r"budget|low.*spend|cheap"]),
    ("Partner Network", [r"affiliate|partner"]),
    ("Digital Buyers", [r"digital|online|course"]),
]

NAME_STOPWORDS = {"the", "and", "for", "with", "from", "that", "this"}

FENCE_START = re.compile(r"^```(?:json)?\s*")
FENCE_END = re.compile(r"\s*```$")


@dataclass
class GenerationResult:
    """Outcome of one generation attempt."""

    success: bool
    filter_groups: List[Dict[str, Any]] = field(default_factory=list)
    suggested_name: Optional[str] = None
    error_kind: Optional[GenerationErrorKind] = None

    @property
    def error(self) -> Optional[str]:
        return USER_MESSAGES[self.error_kind] if self.error_kind else None


class InvalidAIResponse(ValueError):
    """The completion text is not a usable filter-group document."""


def strip_code_fences(content: str) -> str:
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = FENCE_END.sub("", FENCE_START.sub("", cleaned))
    return cleaned.strip()


def parse_ai_response(content: str) -> List[Dict[str, Any]]:
    """
    Parse and validate a completion answer.

    Returns:
        Sanitized filter groups: ``[{"name", "filters": [{"filter_type", "config"}]}]``

    Raises:
        InvalidAIResponse: bad JSON or a structure that fails validation
    """
    try:
        document = json.loads(strip_code_fences(content))
    except ValueError as e:
        raise InvalidAIResponse(f"not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise InvalidAIResponse("top level is not an object")

    groups = document.get("filter_groups")
    if not isinstance(groups, list) or not groups:
        raise InvalidAIResponse("filter_groups must be a non-empty array")

    sanitized = []
    for index, group in enumerate(groups):
        if not isinstance(group, dict):
            raise InvalidAIResponse(f"group {index} is not an object")
        if not isinstance(group.get("name"), str):
            raise InvalidAIResponse(f"group {index} has no string name")
        if not isinstance(group.get("filters"), list):
            raise InvalidAIResponse(f"group {index} has no filters array")

        filters = []
        for audience_filter in group["filters"]:
            if not isinstance(audience_filter, dict):
                raise InvalidAIResponse(f"group {index} contains a non-object filter")
            filter_type = audience_filter.get("filter_type")
            config = audience_filter.get("config")
            try:
                validate_filter(filter_type, config)
            except MalformedFilterError as e:
                raise InvalidAIResponse(f"group {index}: {e}") from e
            if filter_type == FilterType.PRODUCT.value and not all(
                isinstance(product_id, str) for product_id in config.get("product_ids", [])
            ):
                raise InvalidAIResponse(f"group {index}: product_ids must be strings")
            filters.append({"filter_type": filter_type, "config": config})

        sanitized.append({"name": group["name"].strip(), "filters": filters})

    return sanitized


def fallback_segment_name(description: str) -> str:
    """Deterministic name from keywords in the description."""
    words = description.lower().split()

    for name, patterns in NAME_RULES:
        if all(any(re.search(pattern, word) for word in words) for pattern in patterns):
            return name

    key_terms = [w for w in words if len(w) > 3 and w not in NAME_STOPWORDS][:2]
    if key_terms:
        return " ".join(w.capitalize() for w in key_terms) + " Segment"
    return "Custom Segment"


def clean_ai_name(content: Optional[str]) -> str:
    name = re.sub(r"['\"“”]", "", (content or "").strip())
    if "```" in name:
        name = strip_code_fences(name)
    return name.strip()


class SegmentAIGenerator:
    """Free text -> filter groups, through the completion gateway."""

    def __init__(
        self,
        gateway: AIGateway,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.gateway = gateway
        self.max_attempts = max_attempts if max_attempts is not None else settings.AI_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.AI_RETRY_DELAY_SECONDS
        self.state = GenerationState.IDLE

    async def _with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except CompletionError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    raise
                logger.info(f"AI generation attempt {attempt}/{self.max_attempts} failed: {e}")
                await asyncio.sleep(self.retry_delay)

    async def generate(self, description: str, today: Optional[date] = None) -> GenerationResult:
        """
        Generate filter groups for a description.

        Args:
            description: What the seller wants, in their own words
            today: Reference date given to the model (defaults to today)

        Returns:
            GenerationResult; never raises for model or network trouble
        """
        self.state = GenerationState.IDLE

        if not description or not description.strip():
            self.state = GenerationState.REJECTED
            return GenerationResult(success=False, error_kind=GenerationErrorKind.DESCRIPTION_REQUIRED)

        today = today or date.today()
        messages = [
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=f"Current date: {today.isoformat()}. Create segments for: {description}",
            ),
        ]

        self.state = GenerationState.REQUESTING
        try:
            content = await self._with_retries(
                lambda: self.gateway.chat_completion(
                    messages,
                    max_tokens=FILTER_MAX_TOKENS,
                    temperature=FILTER_TEMPERATURE,
                )
            )
        except CompletionError as e:
            self.state = GenerationState.FAILED
            logger.error(f"AI segment generation failed: {e}")
            return GenerationResult(success=False, error_kind=GenerationErrorKind.SERVICE_UNAVAILABLE)

        self.state = GenerationState.VALIDATING
        try:
            filter_groups = parse_ai_response(content)
        except InvalidAIResponse as e:
            self.state = GenerationState.REJECTED
            logger.error(f"AI response rejected: {e}. Content: {content!r}")
            return GenerationResult(success=False, error_kind=GenerationErrorKind.INVALID_RESPONSE)

        self.state = GenerationState.ACCEPTED
        return GenerationResult(
            success=True,
            filter_groups=filter_groups,
            suggested_name=await self.suggest_name(description),
        )

    async def suggest_name(self, description: str) -> str:
        """Short marketing name from the model, else the keyword fallback."""
        try:
            content = await self.gateway.chat_completion(
                [
                    ChatMessage(role="system", content=NAME_SYSTEM_PROMPT),
                    ChatMessage(role="user", content=f"Create a segment name for: {description}"),
                ],
                max_tokens=NAME_MAX_TOKENS,
                temperature=NAME_TEMPERATURE,
            )
        except CompletionError as e:
            logger.error(f"AI name generation failed: {e}")
            return fallback_segment_name(description)

        return clean_ai_name(content) or fallback_segment_name(description)
