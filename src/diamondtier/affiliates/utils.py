"""Helpers for referral codes and commission math."""

import re
import secrets

_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# First dollar figure in free text: "$50,000-$100,000" -> "50,000"
_AMOUNT_RE = re.compile(r"\$?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)")


def generate_referral_code(first_name: str, last_name: str, length: int = 6) -> str:
    """Generate a referral code from the affiliate's initials.

    Format: up to two letters of each name followed by random characters,
    e.g. JADO4K7Q2Z for Jane Doe.
    """
    first = re.sub(r"[^A-Za-z]", "", first_name or "")[:2].upper()
    last = re.sub(r"[^A-Za-z]", "", last_name or "")[:2].upper()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
    return f"{first}{last}{suffix}"


def normalize_referral_code(code: str | None) -> str:
    """Strip whitespace around a referral code; codes are case sensitive."""
    return (code or "").strip()


def calculate_commission(amount: float, rate: float) -> float:
    """Commission for an amount at a percentage rate, rounded to cents."""
    return round(amount * rate / 100, 2)


def parse_funding_amount(text: str | None, default: float) -> float:
    """Extract the first dollar figure from a funding amount string.

    Args:
        text: Free-text amount as entered in the funnel
        default: Value used when nothing numeric is found

    Returns:
        Parsed amount
    """
    if not text:
        return default

    match = _AMOUNT_RE.search(text)
    if not match:
        return default

    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return default


def generate_reference_id(prefix: str = "APP", length: int = 5) -> str:
    """Human-facing application reference, e.g. APP7KQ2M."""
    return prefix + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
