"""Audience segments: filter-based audience selection for seller email campaigns."""

__version__ = "1.0.0"
