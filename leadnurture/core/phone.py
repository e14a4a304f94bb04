"""
Phone number utilities.
Normalization for storage, E.164 for the provider, and display formatting.
"""
import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def digits_only(phone_number: Optional[str]) -> str:
    return _NON_DIGITS.sub("", phone_number or "")


def normalize_phone(phone_number: Optional[str]) -> str:
    """
    Normalize a phone number to the numeric form stored on leads.
    
    "+1 (909) 569-7757" -> "19095697757". Ten digit numbers are assumed
    to be US and get the "1" country code; anything else keeps its digits.
    """
    digits = digits_only(phone_number)
    if len(digits) == 10:
        return f"1{digits}"
    return digits


def last_ten_digits(phone_number: Optional[str]) -> str:
    """Suffix used to match numbers regardless of country code or formatting."""
    return digits_only(phone_number)[-10:]


def to_e164(phone_number: Optional[str]) -> str:
    """Format a phone number for the telephony provider (e.g. "+19095697757")."""
    digits = digits_only(phone_number)
    if not digits:
        return ""
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and not digits.startswith("1"):
        return f"+1{digits}"
    if len(digits) >= 11:
        return f"+{digits}"
    # Less than 10 digits is not dialable, return untouched
    return phone_number


def format_phone_for_display(phone_number: Optional[str]) -> str:
    digits = digits_only(phone_number)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    if len(digits) > 10:
        return f"+{digits[:-10]} {digits[-10:-7]} {digits[-7:-4]}-{digits[-4:]}"
    return phone_number or ""


def validate_phone(phone_number: Optional[str]) -> tuple[bool, str, Optional[str]]:
    """
    Validate user-entered phone numbers.
    
    Returns:
        (is_valid, normalized_phone, error_message)
    """
    if not phone_number:
        return False, "", "Phone number is required"
    
    digits = digits_only(phone_number)
    normalized = normalize_phone(phone_number)
    
    if len(digits) < 7:
        return False, normalized, "Phone number is too short"
    if len(digits) == 7:
        return False, normalized, "Please include area code (e.g., 909-569-7757)"
    if len(digits) > 15:
        return False, normalized, "Phone number is too long"
    return True, normalized, None
