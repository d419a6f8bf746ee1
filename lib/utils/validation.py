"""Validation helpers."""

def ensure(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


def one_of(value: str, choices, field: str) -> str:
    """Return ``value`` lower-cased if it names one of ``choices``."""

    v = str(value or "").strip().lower()
    ensure(v in choices, f"{field} must be one of {sorted(choices)}, got {value!r}")
    return v
