import asyncio

import pytest
from dnslib import QTYPE, RCODE, DNSRecord

from pds_dns.services.dns_server import DNSResponder
from pds_dns.storage.record_repository import SqlRecordStore, TxtAnswer


class FakeStore:
    def __init__(self, records=None, error=None):
        self.records = records or {}
        self.error = error
        self.names = []

    async def find_active_txt_records(self, name):
        self.names.append(name)
        if self.error:
            raise self.error
        return self.records.get(name, [])


def txt_values(reply):
    return [b"".join(rr.rdata.data).decode() for rr in reply.rr]


async def ask(responder, name, qtype="TXT", udp=False):
    query = DNSRecord.question(name, qtype)
    data = await responder.handle_query(query.pack(), udp=udp)
    reply = DNSRecord.parse(data)
    assert reply.header.id == query.header.id
    return reply


async def test_answers_txt_from_store():
    store = FakeStore({"_pds-verify.example.com": [
        TxtAnswer("pds-verify=abc", 120),
        TxtAnswer("pds-verify=def", None),
    ]})
    responder = DNSResponder(store, default_ttl=300)

    reply = await ask(responder, "_PDS-Verify.Example.COM")

    assert store.names == ["_pds-verify.example.com"]
    assert reply.header.aa == 1
    assert reply.header.rcode == RCODE.NOERROR
    assert txt_values(reply) == ["pds-verify=abc", "pds-verify=def"]
    assert [rr.ttl for rr in reply.rr] == [120, 300]
    assert all(rr.rtype == QTYPE.TXT for rr in reply.rr)


async def test_unknown_name_gets_empty_authoritative_answer():
    reply = await ask(DNSResponder(FakeStore()), "nothing.example.com")
    assert reply.header.aa == 1
    assert reply.header.rcode == RCODE.NOERROR
    assert reply.rr == []


async def test_non_txt_query_is_empty():
    store = FakeStore({"example.com": [TxtAnswer("pds-verify=abc", 60)]})
    reply = await ask(DNSResponder(store), "example.com", "A")
    assert reply.rr == []
    assert store.names == []


async def test_store_failure_degrades_to_empty_answer():
    reply = await ask(DNSResponder(FakeStore(error=RuntimeError("db down"))), "example.com")
    assert reply.header.rcode == RCODE.NOERROR
    assert reply.rr == []


async def test_malformed_packet_is_dropped():
    assert await DNSResponder(FakeStore()).handle_query(b"\x12") is None


async def test_long_value_is_split_into_character_strings():
    value = "pds-verify=" + "a" * 600
    reply = await ask(DNSResponder(FakeStore({"example.com": [TxtAnswer(value, 60)]})), "example.com")
    assert len(reply.rr[0].rdata.data) == 3
    assert txt_values(reply) == [value]


async def test_oversized_udp_answer_is_truncated():
    answers = [TxtAnswer("v" * 200, 60) for _ in range(10)]
    responder = DNSResponder(FakeStore({"example.com": answers}))

    udp = await ask(responder, "example.com", udp=True)
    assert udp.header.tc == 1
    assert udp.rr == []

    tcp = await ask(responder, "example.com")
    assert tcp.header.tc == 0
    assert len(tcp.rr) == 10


async def test_serves_over_udp_and_tcp(session_factory, db):
    from pds_dns.models.record_db import RecordType
    from pds_dns.models.record_schema import RecordCreate
    from pds_dns.services import records

    await records.create_record(
        RecordCreate(domain="example.com", name="_pds-verify", type=RecordType.TXT, value="pds-verify=abc", ttl=90), db
    )
    responder = DNSResponder(SqlRecordStore(session_factory), host="127.0.0.1", port=0)
    await responder.start()
    try:
        assert responder.running
        assert responder.tcp_port == responder.udp_port
        query = DNSRecord.question("_pds-verify.example.com", "TXT")
        for tcp in (False, True):
            data = await asyncio.to_thread(query.send, "127.0.0.1", responder.udp_port, tcp, 5)
            reply = DNSRecord.parse(data)
            assert txt_values(reply) == ["pds-verify=abc"]
            assert reply.rr[0].ttl == 90
    finally:
        await responder.stop()
    assert not responder.running


async def test_deactivated_record_is_no_longer_served(session_factory, db):
    from pds_dns.models.record_db import RecordType
    from pds_dns.models.record_schema import RecordCreate
    from pds_dns.services import records

    record = await records.create_record(
        RecordCreate(domain="example.com", type=RecordType.TXT, value="pds-verify=abc"), db
    )
    responder = DNSResponder(SqlRecordStore(session_factory))
    assert txt_values(await ask(responder, "example.com")) == ["pds-verify=abc"]

    await records.delete_record(record.id, db)
    assert txt_values(await ask(responder, "example.com")) == []


@pytest.mark.parametrize("qtype", ["MX", "AAAA"])
async def test_other_types_never_answer(qtype):
    store = FakeStore({"example.com": [TxtAnswer("pds-verify=abc", 60)]})
    reply = await ask(DNSResponder(store), "example.com", qtype)
    assert reply.rr == []
