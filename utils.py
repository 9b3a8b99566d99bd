import random
import string

from errors import InvalidInput


def generate_code(length: int = 6) -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def to_int(value):
    """Positive int or None, the way form and JSON ids arrive."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def require_ints(data, *keys):
    """Pull the given keys as positive ints or raise InvalidInput naming them."""
    values = [to_int((data or {}).get(key)) for key in keys]
    if any(v is None for v in values):
        raise InvalidInput(" and ".join(keys) + " required")
    return values[0] if len(values) == 1 else values


def require_text(data, key, max_length=None):
    value = str((data or {}).get(key) or "").strip()
    if not value:
        raise InvalidInput(f"{key} required")
    if max_length is not None and len(value) > max_length:
        raise InvalidInput(f"{key} too long")
    return value
