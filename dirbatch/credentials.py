"""Random secret generation for new accounts and probe objects."""

import secrets
import string
from typing import List

from .config import PasswordPolicy

SYMBOLS = "!@#$%^*-_=+"

CHARACTER_CLASSES = (
    string.ascii_lowercase,
    string.ascii_uppercase,
    string.digits,
    SYMBOLS,
)

_rng = secrets.SystemRandom()


def character_classes(secret: str) -> int:
    """Count how many of the character classes appear in ``secret``."""
    return sum(1 for chars in CHARACTER_CLASSES if any(c in chars for c in secret))


def generate_secret(policy: PasswordPolicy = PasswordPolicy()) -> str:
    """Generate a random secret satisfying ``policy``.

    One character is drawn from each of ``policy.min_classes`` randomly chosen
    classes so the class requirement always holds; the rest comes from the
    full alphabet, and the result is shuffled.
    """
    required = _rng.sample(CHARACTER_CLASSES, policy.min_classes)
    chars: List[str] = [secrets.choice(cls) for cls in required]
    alphabet = "".join(CHARACTER_CLASSES)
    chars.extend(secrets.choice(alphabet) for _ in range(policy.length - len(chars)))
    _rng.shuffle(chars)
    return "".join(chars)


def mask(secret: str) -> str:
    """Return a fixed-width placeholder for display; never reveals length."""
    return "********" if secret else ""
