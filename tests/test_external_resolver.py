from types import SimpleNamespace

import dns.exception
import dns.resolver
import pytest

from pds_dns.core.errors import TransientLookupFailure
from pds_dns.services.external_resolver import ExternalResolver


def make_resolver(monkeypatch, outcome):
    resolver = ExternalResolver(timeout=1, nameservers=["127.0.0.1"])
    calls = []

    async def fake_resolve(name, rdtype, **kwargs):
        calls.append((name, rdtype, kwargs))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(resolver._get_resolver(), "resolve", fake_resolve)
    return resolver, calls


async def test_joins_multi_string_rdata(monkeypatch):
    answer = [
        SimpleNamespace(strings=(b"pds-verify=", b"abc")),
        SimpleNamespace(strings=(b"v=spf1 -all",)),
    ]
    resolver, calls = make_resolver(monkeypatch, answer)

    values = await resolver.lookup_txt("_pds-verify.example.com.")

    assert values == ["pds-verify=abc", "v=spf1 -all"]
    assert calls[0][0] == "_pds-verify.example.com"
    assert calls[0][1] == "TXT"
    assert calls[0][2]["search"] is False


@pytest.mark.parametrize("error", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer()])
async def test_absent_records_are_empty(monkeypatch, error):
    resolver, _ = make_resolver(monkeypatch, error)
    assert await resolver.lookup_txt("example.com") == []


@pytest.mark.parametrize("error", [dns.exception.Timeout(), dns.exception.DNSException("servfail")])
async def test_transport_failures_are_transient(monkeypatch, error):
    resolver, _ = make_resolver(monkeypatch, error)
    with pytest.raises(TransientLookupFailure):
        await resolver.lookup_txt("example.com")


def test_uses_configured_nameservers_without_cache():
    resolver = ExternalResolver(timeout=2, nameservers=["9.9.9.9"])
    inner = resolver._get_resolver()
    assert resolver.nameservers == ["9.9.9.9"]
    assert inner is resolver._get_resolver()
    assert inner.lifetime == 2
    assert inner.cache is None
