"""Random peer ID generation."""

import secrets
import string
from typing import Callable

from peerrelay.errors import IdExhaustedError

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
ID_LENGTH = 16
DEFAULT_MAX_ATTEMPTS = 100


def generate_id(length: int = ID_LENGTH) -> str:
    """Generate a random alphanumeric peer ID.

    No uniqueness guarantee; see generate_unique_id().
    """
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_unique_id(
    is_taken: Callable[[str], bool],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    generator: Callable[[], str] = generate_id,
) -> str:
    """Generate a peer ID for which is_taken() returns False.

    Args:
        is_taken: Predicate reporting whether an ID is already in use.
        max_attempts: Retry ceiling.
        generator: ID source (injectable for testing).

    Returns:
        An ID not currently taken. It is not reserved.

    Raises:
        IdExhaustedError: If every attempt collided.
    """
    for _ in range(max_attempts):
        candidate = generator()
        if not is_taken(candidate):
            return candidate
    raise IdExhaustedError(max_attempts)
