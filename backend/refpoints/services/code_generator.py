# Overview: Collision-checked generator for referral and coupon codes.

from __future__ import annotations

import secrets
from typing import Callable

from ..errors import GenerationExhausted

# Uppercase letters and digits without the look-alikes 0/O, 1/I/L.
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
DEFAULT_CODE_LENGTH = 8
DEFAULT_MAX_ATTEMPTS = 10


def random_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Format: ABC12XYZ (8 chars by default)."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate(
    exists: Callable[[str], bool],
    *,
    length: int = DEFAULT_CODE_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    source: Callable[[int], str] = random_code,
) -> str:
    """
    Return a code that `exists` reports as unused.

    Draws at most `max_attempts` candidates; running out means the code
    space is close to full, which is surfaced as GenerationExhausted
    instead of looping forever.
    """
    if length <= 0 or max_attempts <= 0:
        raise ValueError("length and max_attempts must be positive")

    for _ in range(max_attempts):
        code = source(length)
        if not exists(code):
            return code

    raise GenerationExhausted(
        f"Could not generate a unique code after {max_attempts} attempts",
        details={"attempts": max_attempts},
    )


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()
