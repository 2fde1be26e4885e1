"""Centralized version constant for taskpilot."""

TASKPILOT_VERSION = "0.4.0"

__all__ = ["TASKPILOT_VERSION"]
