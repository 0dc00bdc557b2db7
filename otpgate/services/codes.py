import re
import secrets

CODE_LENGTH = 6


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def clean_input(raw_code: str) -> str:
    """Drop anything that is not a digit and keep at most six digits."""
    return re.sub(r"\D", "", raw_code or "")[:CODE_LENGTH]


def validate_format(raw_code: str) -> bool:
    digits = re.sub(r"\D", "", raw_code or "")
    return len(digits) == CODE_LENGTH


def format_for_display(code: str) -> str:
    """Render ``123456`` as ``123 456``; anything else is returned untouched."""
    return re.sub(r"(\d{3})(\d{3})", r"\1 \2", code, count=1)
