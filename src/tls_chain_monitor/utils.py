from __future__ import annotations

import hashlib
from datetime import datetime, timezone

# Layout used for every validity date shown to the user,
# e.g. "2024-01-02 15:04:05 +0000 UTC".
CERT_VALIDITY_DATE_LAYOUT = "%Y-%m-%d %H:%M:%S %z %Z"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_validity_date(dt: datetime) -> str:
    return as_utc(dt).strftime(CERT_VALIDITY_DATE_LAYOUT)


def insert_delimiter(s: str, delimiter: str, every: int) -> str:
    return delimiter.join(s[i:i + every] for i in range(0, len(s), every))


def bytes_to_delimited_hex(data: bytes | None, delimiter: str = ":") -> str:
    if not data:
        return ""
    return delimiter.join(f"{b:02X}" for b in data)


def fingerprint(der: bytes, algorithm: str) -> str:
    return bytes_to_delimited_hex(hashlib.new(algorithm, der).digest())


def lower_case(values: list[str]) -> list[str]:
    return [v.lower() for v in values]


def failed_matches(wanted: list[str], present: list[str], case_insensitive: bool = True) -> list[str]:
    """
    Entries of ``wanted`` not found in ``present``, in ``wanted`` order.
    """
    if case_insensitive:
        seen = {p.lower() for p in present}
        return [w for w in wanted if w.lower() not in seen]
    seen = set(present)
    return [w for w in wanted if w not in seen]


def in_list(needle: str, haystack: list[str], case_insensitive: bool = True) -> bool:
    if case_insensitive:
        return needle.lower() in (h.lower() for h in haystack)
    return needle in haystack


def split_csv(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    out: list[str] = []
    for item in value:
        out.extend(v.strip() for v in str(item).split(",") if v.strip())
    return out
