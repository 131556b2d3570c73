# pds_dns/utils/hostname_utils.py
import re
import logging
from pds_dns.core.errors import InvalidDomain, InvalidRecord, ErrorCode

logger = logging.getLogger(__name__)

_DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)
# Record labels may carry a leading underscore (_pds-verify, _dmarc, _sip._tcp ...)
_LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9_](?:[a-z0-9_\-]{0,61}[a-z0-9_])?$")


def normalize_domain(domain: str) -> str:
    """Lowercase, trim and drop the root dot so names compare the way DNS does."""
    if domain is None:
        return ""
    return domain.strip().lower().rstrip(".")


def is_valid_domain(domain: str) -> bool:
    """
    Validates a registrable domain name (e.g. example.com, mail.example.co.uk):
    at least one dot, LDH labels of 1-63 chars, alphabetic TLD of 2+ chars.
    """
    if not domain or len(domain) > 253:
        return False
    return _DOMAIN_PATTERN.match(normalize_domain(domain)) is not None


def validate_domain_or_raise(domain: str) -> str:
    normalized = normalize_domain(domain)
    if not is_valid_domain(normalized):
        logger.warning(f"Rejected invalid domain: {domain!r}")
        raise InvalidDomain()
    return normalized


def validate_record_name_or_raise(name: str) -> str:
    """Accepts "@" for the apex or a dotted relative name such as "_pds-verify" or "www"."""
    name = (name or "@").strip().lower().rstrip(".")
    if name in ("", "@"):
        return "@"
    if len(name) > 253 or not all(_LABEL_PATTERN.match(label) for label in name.split(".")):
        raise InvalidRecord(ErrorCode.INVALID_RECORD_NAME)
    return name


def build_fqdn(name: str, domain: str) -> str:
    name = validate_record_name_or_raise(name)
    domain = normalize_domain(domain)
    return domain if name == "@" else f"{name}.{domain}"
