"""
Authoritative TXT responder.

Answers TXT/IN questions from active records in the record store and gives
every other question an authoritative empty answer. Clients always get a
reply: storage trouble degrades to an empty answer section, never SERVFAIL.
"""
import asyncio
import logging
import struct
from typing import Optional, Set

from dnslib import CLASS, QTYPE, RR, TXT, DNSError, DNSRecord

from pds_dns.core.config import settings
from pds_dns.utils.hostname_utils import normalize_domain
from pds_dns.utils.record_utils import serving_ttl, split_txt_value

logger = logging.getLogger(__name__)

UDP_PAYLOAD_LIMIT = 512
EDNS_PAYLOAD_CAP = 4096
TCP_IDLE_TIMEOUT = 10.0


class _UDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, responder: "DNSResponder"):
        self.responder = responder
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.responder._spawn(self._reply(data, addr))

    def error_received(self, exc):
        logger.warning(f"UDP socket error: {exc!r}")

    async def _reply(self, data, addr):
        response = await self.responder.handle_query(data, udp=True)
        if response is not None and self.transport is not None and not self.transport.is_closing():
            self.transport.sendto(response, addr)


class DNSResponder:
    def __init__(self, record_store, host: str = None, port: int = None, default_ttl: int = None):
        self.record_store = record_store
        self.host = host if host is not None else settings.DNS_HOST
        self.port = port if port is not None else settings.DNS_PORT
        self.default_ttl = default_ttl if default_ttl is not None else settings.DNS_DEFAULT_TTL
        self._udp_transport = None
        self._tcp_server = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._udp_transport is not None

    @property
    def udp_port(self) -> Optional[int]:
        return self._udp_transport.get_extra_info("sockname")[1] if self._udp_transport else None

    @property
    def tcp_port(self) -> Optional[int]:
        return self._tcp_server.sockets[0].getsockname()[1] if self._tcp_server else None

    async def start(self):
        if self.running:
            return
        loop = asyncio.get_running_loop()
        try:
            self._udp_transport, _ = await loop.create_datagram_endpoint(
                lambda: _UDPProtocol(self), local_addr=(self.host, self.port)
            )
            # With port 0 the OS picks one; serve TCP on the same number
            self._tcp_server = await asyncio.start_server(self._handle_tcp, self.host, self.udp_port)
        except OSError as e:
            logger.error(f"Failed to start DNS server on {self.host}:{self.port}: {e}")
            await self.stop()
            raise
        logger.info(f"DNS Server running on {self.host}:{self.udp_port} (udp/tcp)")

    async def stop(self):
        if self._udp_transport is not None:
            self._udp_transport.close()
            self._udp_transport = None
        if self._tcp_server is not None:
            self._tcp_server.close()
            await self._tcp_server.wait_closed()
            self._tcp_server = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("DNS Server stopped")

    async def handle_query(self, data: bytes, udp: bool = False) -> Optional[bytes]:
        """Builds the wire response for one query; None means the packet is dropped."""
        try:
            request = DNSRecord.parse(data)
        except DNSError as e:
            logger.debug(f"Dropping malformed DNS packet ({len(data)} bytes): {e}")
            return None

        reply = request.reply(ra=0, aa=1)
        if not request.questions:
            return reply.pack()

        question = request.questions[0]
        qname = normalize_domain(str(question.qname))
        qtype = QTYPE.get(question.qtype, question.qtype)
        logger.debug(f"DNS Query - Domain: {qname}, Type: {qtype}")

        if question.qtype == QTYPE.TXT and question.qclass == CLASS.IN:
            answers = await self._lookup_txt(qname)
            for answer in answers:
                reply.add_answer(RR(
                    rname=question.qname,
                    rtype=QTYPE.TXT,
                    rclass=CLASS.IN,
                    ttl=serving_ttl(answer.ttl, self.default_ttl),
                    rdata=TXT(split_txt_value(answer.value)),
                ))
            logger.debug(f"Found {len(answers)} TXT records for {qname}")
        else:
            logger.debug(f"Unsupported record type: {qtype} for {qname}")

        packed = reply.pack()
        if udp and len(packed) > self._udp_limit(request):
            reply = request.reply(ra=0, aa=1)
            reply.header.tc = 1
            packed = reply.pack()
        return packed

    async def _lookup_txt(self, qname: str):
        try:
            return await self.record_store.find_active_txt_records(qname)
        except Exception:
            logger.error(f"Error looking up TXT records for {qname}", exc_info=True)
            return []

    def _udp_limit(self, request: DNSRecord) -> int:
        for rr in request.ar:
            if rr.rtype == QTYPE.OPT:
                return max(UDP_PAYLOAD_LIMIT, min(int(rr.rclass), EDNS_PAYLOAD_CAP))
        return UDP_PAYLOAD_LIMIT

    async def _handle_tcp(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = writer.get_extra_info("peername")
        try:
            while True:
                header = await asyncio.wait_for(reader.readexactly(2), timeout=TCP_IDLE_TIMEOUT)
                (length,) = struct.unpack("!H", header)
                data = await asyncio.wait_for(reader.readexactly(length), timeout=TCP_IDLE_TIMEOUT)
                response = await self.handle_query(data)
                if response is None:
                    break
                writer.write(struct.pack("!H", len(response)) + response)
                await writer.drain()
        except (asyncio.IncompleteReadError, asyncio.TimeoutError):
            pass  # client finished or went idle
        except ConnectionError as e:
            logger.debug(f"TCP connection from {peer} dropped: {e!r}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Unhandled error answering DNS query", exc_info=task.exception())
