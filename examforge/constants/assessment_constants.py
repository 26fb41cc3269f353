"""Assessment rules shared across validation, assembly and import layers."""

MIN_ANSWERS: int = 2
MAX_ANSWERS: int = 6
ANSWER_LETTERS: tuple[str, ...] = ("A", "B", "C", "D", "E", "F")
FORBIDDEN_TAG_CHARACTERS: tuple[str, ...] = ("#", ",")

DEFAULT_MAX_PRESENTED_ANSWERS: int = 4
DEFAULT_ACCESS_CODE_LENGTH: int = 8
# Upper-case letters and digits without the easily confused 0/O, 1/I/L.
ACCESS_CODE_ALPHABET: str = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
ACCESS_CODE_MAX_ATTEMPTS: int = 20
