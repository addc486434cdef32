"""Placement signal model."""

from enum import StrEnum


class Signal(StrEnum):
    GOOD = "GOOD"
    BAD = "BAD"
    UNKNOWN = "UNKNOWN"  # price data unavailable; gates placement like BAD
