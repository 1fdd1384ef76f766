"""
PII (Personally Identifiable Information) masking for checkout logs.
"""
import re

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
PHONE_RE = re.compile(r"^[\d\s\+\-\(\)]+$")

PII_FIELDS = {
    "email", "phone", "name", "customer_name", "address", "user_id", "guest_id",
}

# Keys that look like ids but identify business records, not people
PUBLIC_ID_FIELDS = {
    "order_id", "inventory_id", "promotion_id", "transaction_id", "voucher_code", "request_id",
}


def mask_email(email: str) -> str:
    """Mask email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    masked = "**" if len(local) <= 2 else local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"


def mask_phone(phone: str) -> str:
    """Mask phone number."""
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_name(name: str) -> str:
    """Mask name."""
    if len(name) <= 2:
        return "**"
    return name[0] + "*" * (len(name) - 2) + name[-1]


def mask_address(address: str) -> str:
    """Keep only the last comma-separated part (city/province)."""
    parts = [part.strip() for part in address.split(",") if part.strip()]
    if len(parts) <= 1:
        return "***"
    return "***, " + parts[-1]


def mask_identifier(value: str) -> str:
    """Mask UUIDs and other identifiers, keeping a short prefix."""
    if UUID_RE.match(value):
        return value[:8] + "-****-****-****-************"
    if len(value) <= 4:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 4)


def mask_value(key: str, value):
    if not isinstance(value, str) or not value:
        return value
    key_lower = key.lower()
    if "@" in value or key_lower == "email":
        return mask_email(value)
    if key_lower == "address":
        return mask_address(value)
    if "name" in key_lower:
        return mask_name(value)
    if key_lower == "phone" or (PHONE_RE.match(value) and not key_lower.endswith("_id")):
        return mask_phone(value)
    return mask_identifier(value)


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif key_lower in PUBLIC_ID_FIELDS:
            masked[key] = value
        elif key_lower in PII_FIELDS or key_lower.endswith("_id"):
            masked[key] = mask_value(key, value)
        else:
            masked[key] = value
    return masked
