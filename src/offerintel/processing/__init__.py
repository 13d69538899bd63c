"""Text and value normalization helpers."""

from offerintel.processing.normalization import parse_amount, parse_date_parts, parse_month, parse_time

__all__ = ["parse_amount", "parse_date_parts", "parse_month", "parse_time"]
