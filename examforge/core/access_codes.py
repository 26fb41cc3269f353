"""Generator for single-use participant access codes."""

from __future__ import annotations

import secrets
from threading import Lock
from typing import Callable

from examforge.constants.assessment_constants import (
    ACCESS_CODE_ALPHABET,
    ACCESS_CODE_MAX_ATTEMPTS,
    DEFAULT_ACCESS_CODE_LENGTH,
)


class AccessCodeGenerator:
    """Produces random codes that are unique against the store and within a batch."""

    def __init__(
        self,
        is_taken: Callable[[str], bool],
        length: int = DEFAULT_ACCESS_CODE_LENGTH,
        alphabet: str = ACCESS_CODE_ALPHABET,
    ) -> None:
        if length < 4:
            raise ValueError("Access codes must be at least four characters long.")
        if len(set(alphabet)) < 2:
            raise ValueError("Access code alphabet needs at least two distinct characters.")
        self._is_taken = is_taken
        self._length = length
        self._alphabet = alphabet
        self._lock = Lock()

    def generate_batch(self, count: int) -> list[str]:
        """Return ``count`` distinct codes none of which exists in the store yet."""
        with self._lock:
            codes: list[str] = []
            issued: set[str] = set()
            for _ in range(count):
                code = self._next_code(issued)
                issued.add(code)
                codes.append(code)
            return codes

    def _next_code(self, issued: set[str]) -> str:
        for _ in range(ACCESS_CODE_MAX_ATTEMPTS):
            code = "".join(secrets.choice(self._alphabet) for _ in range(self._length))
            if code not in issued and not self._is_taken(code):
                return code
        raise RuntimeError("Could not generate a unique access code; increase the code length.")


def normalize_access_code(raw: str) -> str:
    """Codes are case-insensitive and may be typed with surrounding spaces or dashes."""
    return raw.strip().upper().replace("-", "").replace(" ", "")
