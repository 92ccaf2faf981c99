"""Utilities package for common functions."""

from .parsing import format_date, parse_amount, parse_date, round_amount

__all__ = ['parse_date', 'format_date', 'parse_amount', 'round_amount']
