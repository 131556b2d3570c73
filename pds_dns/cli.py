"""
pds-dns - command line entry point.

Runs the HTTP API (with the DNS responder and poller), the responder on its
own, and the verification operations directly against the database.
"""
import argparse
import asyncio
import json
import logging
import sys

from pds_dns.core.config import settings
from pds_dns.core.errors import ServiceError
from pds_dns.core.logger import configure_logging
from pds_dns.models.record_db import RecordType
from pds_dns.models.record_schema import RecordCreate, RecordResponse
from pds_dns.models.response_schema import DomainCreate, DomainResponse, MessageResponse
from pds_dns.models.verification_db import ServiceType

logger = logging.getLogger(__name__)


def _print(model):
    if isinstance(model, list):
        print(json.dumps([m.model_dump(mode="json") for m in model], indent=2))
    else:
        print(model.model_dump_json(indent=2))


async def _with_session(action):
    from pds_dns.storage.db import AsyncSessionLocal, engine, init_db

    await init_db()
    try:
        async with AsyncSessionLocal() as db:
            return await action(db)
    finally:
        await engine.dispose()


def _engine():
    from pds_dns.services.verification import build_verification_engine

    return build_verification_engine()


async def _run_dns(host: str, port: int):
    from pds_dns.services.dns_server import DNSResponder
    from pds_dns.storage.db import AsyncSessionLocal, init_db
    from pds_dns.storage.record_repository import SqlRecordStore

    await init_db()
    responder = DNSResponder(SqlRecordStore(AsyncSessionLocal), host=host, port=port)
    await responder.start()
    try:
        await asyncio.Event().wait()
    finally:
        await responder.stop()


def cmd_serve(args):
    import uvicorn

    uvicorn.run("pds_dns.main:app", host=args.host, port=args.port, log_config=None)


def cmd_dns(args):
    try:
        asyncio.run(_run_dns(args.host, args.port))
    except KeyboardInterrupt:
        logger.info("DNS server interrupted")


def cmd_challenge(args):
    engine = _engine()
    result = asyncio.run(_with_session(
        lambda db: engine.generate_challenge(
            db, args.domain, args.service_type, args.service_id, publish_record=args.publish
        )
    ))
    _print(result)
    print(f"\nAdd a TXT record at {result.txt_record_name} with value {result.txt_record_value}", file=sys.stderr)


def cmd_check(args):
    engine = _engine()
    if args.token:
        action = lambda db: engine.check_status(db, token=args.ref)
    else:
        action = lambda db: engine.check_status(db, verification_id=args.ref)
    _print(asyncio.run(_with_session(action)))


def cmd_complete(args):
    engine = _engine()
    _print(asyncio.run(_with_session(
        lambda db: engine.complete_verification(db, args.verification_id, args.service_id, force=args.force)
    )))


def cmd_add_record(args):
    from pds_dns.services import records

    async def action(db):
        data = RecordCreate(domain=args.domain, name=args.name, type=RecordType(args.type.upper()), value=args.value, ttl=args.ttl)
        record = await records.create_record(data, db)
        return RecordResponse.from_record(record, data.domain.lower())

    _print(asyncio.run(_with_session(action)))


def cmd_list_records(args):
    from pds_dns.services import records

    async def action(db):
        record_type = RecordType(args.type.upper()) if args.type else None
        found = await records.list_records_for_domain(args.domain, db, record_type)
        return [RecordResponse.from_record(r, args.domain.lower()) for r in found]

    _print(asyncio.run(_with_session(action)))


def cmd_list_domains(args):
    from pds_dns.services import records

    async def action(db):
        found = await records.list_domains(db, args.verified)
        return [DomainResponse.model_validate(d) for d in found]

    _print(asyncio.run(_with_session(action)))


def cmd_add_domain(args):
    from pds_dns.services import records

    async def action(db):
        data = DomainCreate(name=args.name, description=args.description, owner=args.owner)
        return DomainResponse.model_validate(await records.create_domain(data, db))

    _print(asyncio.run(_with_session(action)))


def cmd_remove_domain(args):
    from pds_dns.services import records

    async def action(db):
        await records.delete_domain(args.name, db)
        return MessageResponse(message="Domain deleted successfully", domain=args.name.lower())

    _print(asyncio.run(_with_session(action)))


def cmd_remove_record(args):
    from pds_dns.services import records
    from pds_dns.storage.record_repository import fetch_domain_by_id

    async def action(db):
        record = await records.delete_record(args.record_id, db, hard=args.hard)
        domain = await fetch_domain_by_id(db, record.domain_id)
        return RecordResponse.from_record(record, domain.name if domain else "")

    _print(asyncio.run(_with_session(action)))


def cmd_reset_verification(args):
    engine = _engine()

    async def action(db):
        return DomainResponse.model_validate(await engine.reset_domain_verification(db, args.domain))

    _print(asyncio.run(_with_session(action)))


def cmd_lookup(args):
    from pds_dns.services.external_resolver import ExternalResolver

    values = asyncio.run(ExternalResolver(timeout=args.timeout).lookup_txt(args.name))
    print(json.dumps(values, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pds-dns", description="PDS DNS verification service")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the HTTP API with the DNS responder")
    p.add_argument("--host", default=settings.HTTP_HOST)
    p.add_argument("--port", type=int, default=settings.HTTP_PORT)
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("dns", help="Run only the DNS responder")
    p.add_argument("--host", default=settings.DNS_HOST)
    p.add_argument("--port", type=int, default=settings.DNS_PORT)
    p.set_defaults(func=cmd_dns)

    p = sub.add_parser("challenge", help="Generate a verification challenge for a domain")
    p.add_argument("domain")
    p.add_argument("--service-type", "-s", default=ServiceType.PDS.value, choices=[t.value for t in ServiceType])
    p.add_argument("--service-id", "-i", default="cli-verification")
    p.add_argument("--publish", action="store_true", help="Also serve the TXT record from this server")
    p.set_defaults(func=cmd_challenge)

    p = sub.add_parser("check", help="Attempt verification and print its status")
    p.add_argument("ref", help="Verification id (or token with --token)")
    p.add_argument("--token", action="store_true")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("complete", help="Complete a verification")
    p.add_argument("verification_id")
    p.add_argument("--service-id", default=None)
    p.add_argument("--force", action="store_true")
    p.set_defaults(func=cmd_complete)

    p = sub.add_parser("add-record", help="Add a DNS record")
    p.add_argument("domain")
    p.add_argument("value")
    p.add_argument("--name", default="@")
    p.add_argument("--type", default="TXT", type=str.upper, choices=[t.value for t in RecordType])
    p.add_argument("--ttl", type=int, default=300)
    p.set_defaults(func=cmd_add_record)

    p = sub.add_parser("list-records", help="List records of a domain")
    p.add_argument("domain")
    p.add_argument("--type", default=None, type=str.upper, choices=[t.value for t in RecordType])
    p.set_defaults(func=cmd_list_records)

    p = sub.add_parser("list-domains", help="List registered domains")
    state = p.add_mutually_exclusive_group()
    state.add_argument("--verified", dest="verified", action="store_const", const=True, default=None)
    state.add_argument("--unverified", dest="verified", action="store_const", const=False)
    p.set_defaults(func=cmd_list_domains)

    p = sub.add_parser("add-domain", help="Register a domain")
    p.add_argument("name")
    p.add_argument("--description", default=None)
    p.add_argument("--owner", default=None)
    p.set_defaults(func=cmd_add_domain)

    p = sub.add_parser("remove-domain", help="Delete a domain with its records and verifications")
    p.add_argument("name")
    p.set_defaults(func=cmd_remove_domain)

    p = sub.add_parser("remove-record", help="Deactivate a record (or delete it with --hard)")
    p.add_argument("record_id", type=int)
    p.add_argument("--hard", action="store_true")
    p.set_defaults(func=cmd_remove_record)

    p = sub.add_parser("reset-verification", help="Clear a domain's verification state")
    p.add_argument("domain")
    p.set_defaults(func=cmd_reset_verification)

    p = sub.add_parser("lookup", help="Query public DNS for TXT records")
    p.add_argument("name")
    p.add_argument("--timeout", type=float, default=settings.EXTERNAL_DNS_TIMEOUT)
    p.set_defaults(func=cmd_lookup)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)
    try:
        args.func(args)
    except ServiceError as e:
        print(f"Error: {e.detail}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
