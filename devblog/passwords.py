"""
Rule-based password strength checks.

``validate_password`` runs every rule and reports all violations together
rather than stopping at the first one, so a registration form can show the
user everything that needs fixing in a single round trip.
"""
import re
import secrets
from dataclasses import dataclass, field

SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

COMMON_PASSWORDS: frozenset[str] = frozenset(
    {
        "password",
        "123456",
        "123456789",
        "qwerty",
        "abc123",
        "password123",
        "admin",
        "letmein",
        "welcome",
        "monkey",
    }
)

# Every 3-character window of these is treated as a sequential run.
SEQUENCES: tuple[str, ...] = ("abcdefghijklmnopqrstuvwxyz", "0123456789")

MIN_LENGTH = 8
MAX_SCORE = 4

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"\d")
_SYMBOL_RE = re.compile(f"[{re.escape(SYMBOLS)}]")
_REPEAT_RE = re.compile(r"(.)\1{2,}")

_STRENGTH_LABELS = {0: "Very Weak", 1: "Very Weak", 2: "Weak", 3: "Medium", 4: "Strong"}


@dataclass
class PasswordValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    score: int = 0


def _sequential_runs(sequences: tuple[str, ...]) -> set[str]:
    return {seq[i:i + 3] for seq in sequences for i in range(len(seq) - 2)}


def _has_sequential_run(password: str, sequences: tuple[str, ...]) -> bool:
    lowered = password.lower()
    return any(run in lowered for run in _sequential_runs(sequences))


def validate_password(
    password: str,
    common_passwords: frozenset[str] | set[str] = COMMON_PASSWORDS,
    sequences: tuple[str, ...] = SEQUENCES,
) -> PasswordValidationResult:
    """
    Score *password* from 0 to 4 and collect every rule it breaks.

    Each of the five base checks (length, uppercase, lowercase, digit,
    symbol) adds one point.  Common passwords cost two points, repeated
    characters and sequential runs one point each; penalties never take
    the score below zero and the result is capped at 4.
    """
    errors: list[str] = []
    score = 0

    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    else:
        score += 1

    if not _UPPER_RE.search(password):
        errors.append("Password must contain at least one uppercase letter")
    else:
        score += 1

    if not _LOWER_RE.search(password):
        errors.append("Password must contain at least one lowercase letter")
    else:
        score += 1

    if not _DIGIT_RE.search(password):
        errors.append("Password must contain at least one number")
    else:
        score += 1

    if not _SYMBOL_RE.search(password):
        errors.append("Password must contain at least one special character")
    else:
        score += 1

    if password.lower() in {p.lower() for p in common_passwords}:
        errors.append("Password is too common, please choose a stronger password")
        score = max(0, score - 2)

    if _REPEAT_RE.search(password):
        errors.append("Password should not contain repeated characters")
        score = max(0, score - 1)

    if _has_sequential_run(password, sequences):
        errors.append("Password should not contain sequential characters")
        score = max(0, score - 1)

    return PasswordValidationResult(
        is_valid=not errors,
        errors=errors,
        score=min(MAX_SCORE, score),
    )


def password_strength(score: int) -> str:
    """Human label for a 0-4 score."""
    return _STRENGTH_LABELS.get(score, "Unknown")


def generate_password_suggestion(length: int = 12) -> str:
    """
    Return a random password containing at least one character from each
    class.  Suggestions are re-drawn until they pass ``validate_password``
    so we never suggest something we would reject.
    """
    uppercase = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    lowercase = "abcdefghijklmnopqrstuvwxyz"
    digits = "0123456789"
    symbols = "!@#$%^&*()_+-=[]{}|;:,.<>?"
    alphabet = uppercase + lowercase + digits + symbols

    while True:
        chars = [
            secrets.choice(uppercase),
            secrets.choice(lowercase),
            secrets.choice(digits),
            secrets.choice(symbols),
        ]
        chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
        secrets.SystemRandom().shuffle(chars)
        candidate = "".join(chars)
        if validate_password(candidate).is_valid:
            return candidate
