"""Random code generation with bounded uniqueness retries."""

import logging
import secrets
from collections.abc import Awaitable, Callable

from classkey.config import DEFAULT_CODE_ALPHABET
from classkey.exceptions import GenerationExhausted

logger = logging.getLogger(__name__)

DEFAULT_CODE_LENGTH = 8
DEFAULT_MAX_ATTEMPTS = 10


def generate(alphabet: str = DEFAULT_CODE_ALPHABET, length: int = DEFAULT_CODE_LENGTH) -> str:
    """Draw ``length`` characters uniformly from ``alphabet``."""
    if not alphabet:
        raise ValueError("Alphabet must not be empty")
    if length < 1:
        raise ValueError("Code length must be at least 1")
    return "".join(secrets.choice(alphabet) for _ in range(length))


async def generate_unique(
    exists_check: Callable[[str], Awaitable[bool]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    alphabet: str = DEFAULT_CODE_ALPHABET,
    length: int = DEFAULT_CODE_LENGTH,
) -> str:
    """Generate a code that ``exists_check`` reports as unused.

    The returned string is not reserved; the caller persists it. Raises
    GenerationExhausted after ``max_attempts`` collisions instead of changing
    the code's shape.
    """
    for attempt in range(1, max_attempts + 1):
        code = generate(alphabet, length)
        if not await exists_check(code):
            return code
        logger.debug(f"Generated code collided with an existing one (attempt {attempt}/{max_attempts})")

    logger.error(f"Failed to generate unique code after {max_attempts} attempts")
    raise GenerationExhausted()


def normalize(code: str) -> str:
    """Normalize user input before an exact-match lookup."""
    return code.strip().upper()


def matches_format(code: str, alphabet: str = DEFAULT_CODE_ALPHABET, length: int = DEFAULT_CODE_LENGTH) -> bool:
    """Check that a code has the configured length and only alphabet characters."""
    return len(code) == length and all(c in alphabet for c in code)
