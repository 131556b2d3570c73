"""
Challenge tokens and the TXT conventions used to prove them.

A native challenge is published as ``_pds-verify.<domain> TXT "pds-verify=<token>"``.
Services with their own convention (OneLogin) publish ``<prefix><token>`` at
the domain apex instead. Both mappings are pure functions of the token, so a
value computed at issue time is always the value checked later.
"""
import enum
import re
import secrets
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pds_dns.models.verification_db import ServiceType

TOKEN_BYTES = 32
NATIVE_PREFIX = "pds-verify="
VERIFY_LABEL = "_pds-verify"

EXTERNAL_PREFIXES = {
    ServiceType.ONELOGIN: "onelogin-domain-verification=",
}

_TOKEN_PATTERN = re.compile(r"^[a-f0-9]{%d}$" % (TOKEN_BYTES * 2))


class EvidenceKind(enum.Enum):
    NATIVE = "native"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Evidence:
    """What a TXT record must contain, and where public DNS should be asked for it."""

    kind: EvidenceKind
    expected_value: str
    lookup_names: Tuple[str, ...]
    provider: Optional[str] = None

    def matches(self, txt_value: str) -> bool:
        return txt_value_matches(txt_value, self.expected_value)

    def matches_any(self, txt_values) -> bool:
        return any(self.matches(value) for value in txt_values)


def generate_verification_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def is_well_formed_token(token: str) -> bool:
    return bool(token) and _TOKEN_PATTERN.match(token) is not None


def external_prefix(service_type: ServiceType) -> Optional[str]:
    return EXTERNAL_PREFIXES.get(ServiceType(service_type))


def format_txt_record(token: str, service_type: ServiceType = ServiceType.PDS) -> str:
    prefix = external_prefix(service_type) or NATIVE_PREFIX
    return f"{prefix}{token}"


def txt_record_name(domain: str) -> str:
    return f"{VERIFY_LABEL}.{domain}"


def challenge_record_name(domain: str, service_type: ServiceType = ServiceType.PDS) -> str:
    """Where the requester is told to publish: external conventions live at the apex."""
    return domain if external_prefix(service_type) else txt_record_name(domain)


def extract_verification_token(txt_value: str, prefix: str = NATIVE_PREFIX) -> Optional[str]:
    if not txt_value:
        return None
    match = re.search(re.escape(prefix) + r"([a-f0-9]+)", txt_value)
    return match.group(1) if match else None


def txt_value_matches(txt_value: str, expected_value: str) -> bool:
    """
    True when one whitespace-separated field of the TXT value is exactly the
    expected value. Quoted zone-file style values ("pds-verify=...") are accepted.
    """
    if not txt_value or not expected_value:
        return False
    return any(field.strip('"') == expected_value for field in txt_value.split())


def evidence_for(service_type: ServiceType, token: str, domain: str) -> List[Evidence]:
    """Native evidence always comes first; an external convention is appended when the service has one."""
    plan = [
        Evidence(
            kind=EvidenceKind.NATIVE,
            expected_value=format_txt_record(token, ServiceType.PDS),
            lookup_names=(txt_record_name(domain), domain),
        )
    ]
    prefix = external_prefix(service_type)
    if prefix:
        plan.append(
            Evidence(
                kind=EvidenceKind.EXTERNAL,
                expected_value=f"{prefix}{token}",
                lookup_names=(domain,),
                provider=ServiceType(service_type).value,
            )
        )
    return plan
