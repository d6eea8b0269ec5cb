"""
Paste identifier generation.
"""
import secrets
import string

# Same 64-symbol URL-safe alphabet nanoid uses.
ALPHABET = string.ascii_letters + string.digits + "_-"
DEFAULT_ID_LENGTH = 21


def generate_paste_id(length: int = DEFAULT_ID_LENGTH) -> str:
    """
    Generate a random URL-safe paste identifier.

    Args:
        length: Number of symbols in the identifier

    Returns:
        Identifier drawn uniformly from ALPHABET using the OS entropy source
    """
    if length < 1:
        raise ValueError("length must be >= 1")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
