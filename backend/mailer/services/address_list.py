"""Recipient list normalisation and validation."""
from dataclasses import dataclass, field
from typing import Iterable, List

from email_validator import EmailNotValidError, validate_email

MAX_ADDRESS_LENGTH = 254


@dataclass
class ParsedAddressList:
    valid: List[str] = field(default_factory=list)
    invalid: List[dict] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)


def check_address(email: str) -> str:
    """Return an error reason for ``email``, or an empty string when it is usable."""
    if len(email) > MAX_ADDRESS_LENGTH:
        return f"Email too long (max {MAX_ADDRESS_LENGTH} characters)"
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        return str(e) or "Invalid email format"
    return ""


def parse_address_list(raw_emails: Iterable[str]) -> ParsedAddressList:
    """Trim, lower-case, de-duplicate and validate a list of addresses.

    Blank entries are skipped. First occurrence wins; later repeats are
    reported as duplicates. Order of the valid list follows the input.
    """
    result = ParsedAddressList()
    seen = set()

    for raw in raw_emails:
        email = (raw or "").strip().lower()
        if not email:
            continue
        if email in seen:
            result.duplicates.append(email)
            continue
        seen.add(email)

        reason = check_address(email)
        if reason:
            result.invalid.append({"email": email, "reason": reason})
        else:
            result.valid.append(email)

    return result
