"""Exceptions raised by the rule grounding package.

A rule that references an unknown entity is *rejected*, which is a normal
``False`` answer and never an exception.
"""

from __future__ import annotations


class RuleGroundingError(Exception):
    """Base exception for rule grounding failures."""


class OracleUnavailableError(RuleGroundingError):
    """Raised when the knowledge base could not be queried or answered malformed."""


class InvalidMetadataError(RuleGroundingError):
    """Raised when a rule without metadata is submitted for annotation."""


class RuleSyntaxError(RuleGroundingError, ValueError):
    """Raised when rule text cannot be compiled."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
