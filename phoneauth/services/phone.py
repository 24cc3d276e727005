import re

from phoneauth.errors import ValidationError

E164_PATTERN = re.compile(r"^\+[1-9][0-9]{1,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(phone_number: str | None) -> str:
    """Return the E.164 form of ``phone_number`` or raise ``ValidationError``.

    Whitespace and common separators are dropped and a missing leading ``+``
    is added, so ``"1 (555) 123-4567"`` becomes ``"+15551234567"``.
    """
    cleaned = _SEPARATORS.sub("", phone_number or "")
    if cleaned and not cleaned.startswith("+"):
        cleaned = f"+{cleaned}"
    if not E164_PATTERN.match(cleaned):
        raise ValidationError("Invalid phone number format", code="INVALID_PHONE")
    return cleaned


def mask_phone(phone_number: str) -> str:
    if len(phone_number) <= 4:
        return "***"
    return f"{phone_number[:3]}***{phone_number[-2:]}"
