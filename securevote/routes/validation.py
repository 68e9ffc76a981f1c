from datetime import date


class PayloadError(ValueError):
    pass


def text_field(data, key, required=False):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise PayloadError(f"{key} must be text.")
    value = (value or "").strip()
    if required and not value:
        raise PayloadError(f"{key} is required.")
    return value or None


def int_field(data, key, default):
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise PayloadError(f"{key} must be a whole number.")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise PayloadError(f"{key} must be a whole number.") from None


def date_field(data, key):
    try:
        return date.fromisoformat(str(data.get(key)))
    except ValueError:
        raise PayloadError(f"{key} must be an ISO date (YYYY-MM-DD).") from None
