# pds_dns/utils/record_utils.py
from typing import List

MAX_CHARACTER_STRING = 255


def serving_ttl(stored_ttl, default_ttl: int = 300) -> int:
    """TTL the responder puts on the wire: the record's own TTL, or the default when absent/invalid."""
    try:
        ttl = int(stored_ttl)
    except (TypeError, ValueError):
        return default_ttl
    if ttl < 0:
        return default_ttl
    return min(ttl, 2**31 - 1)


def split_txt_value(value: str) -> List[bytes]:
    """
    Splits a TXT value into DNS character-strings of at most 255 octets.
    A TXT RDATA is a sequence of such strings; resolvers concatenate them back.
    """
    data = value.encode("utf-8")
    if not data:
        return [b""]
    return [data[i:i + MAX_CHARACTER_STRING] for i in range(0, len(data), MAX_CHARACTER_STRING)]


def join_txt_strings(strings) -> str:
    """Inverse of split_txt_value for rdata coming back from a resolver."""
    return b"".join(
        s if isinstance(s, bytes) else str(s).encode("utf-8") for s in strings
    ).decode("utf-8", errors="replace")
