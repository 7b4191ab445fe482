"""Exceptions raised by the driving-time engine."""

from __future__ import annotations


class LenkzeitError(Exception):
    """Base class for engine errors."""


class InvalidState(LenkzeitError):
    """A transition was attempted while its preconditions do not hold.

    The state machine is left exactly as it was before the call.
    """


class ValidationError(LenkzeitError):
    """Malformed input to a query, transition, or parser."""
