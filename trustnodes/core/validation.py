# trustnodes/core/validation.py
"""Argument checks shared by the contract components."""

from .errors import InvalidInputError, InvalidScoreError
from .types import MAX_SCORE, MAX_UINT, MIN_SCORE


def check_int(value, name: str) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def check_uint(value, name: str) -> int:
    check_int(value, name)
    if value < 0:
        raise InvalidInputError(f"{name} must be non-negative, got {value}")
    if value > MAX_UINT:
        raise InvalidInputError(f"{name} must be at most {MAX_UINT}, got {value}")
    return value


def check_score(score: int) -> int:
    """Range rule, applied after the relational preconditions."""
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScoreError(f"score must be between {MIN_SCORE} and {MAX_SCORE}, got {score}")
    return score


def check_principal(principal, name: str = "principal") -> str:
    if not isinstance(principal, str) or not principal:
        raise InvalidInputError(f"{name} must be a non-empty string")
    return principal


def check_bounded_ascii(text, max_length: int, name: str) -> str:
    """Text must be ASCII and at most max_length characters."""
    if not isinstance(text, str):
        raise InvalidInputError(f"{name} must be a string")
    if len(text) > max_length:
        raise InvalidInputError(f"{name} exceeds {max_length} characters ({len(text)})")
    if not text.isascii():
        raise InvalidInputError(f"{name} must be ASCII")
    return text
