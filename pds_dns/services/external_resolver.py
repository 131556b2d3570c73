"""
Outbound TXT lookups against public DNS.

Every call is a fresh query: the point is to observe records that third
parties have just published, so nothing here caches answers.
"""
import asyncio
import logging
from typing import List, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from pds_dns.core.config import settings
from pds_dns.core.errors import TransientLookupFailure
from pds_dns.utils.record_utils import join_txt_strings

logger = logging.getLogger(__name__)


class ExternalResolver:
    def __init__(self, timeout: float = None, nameservers: Optional[List[str]] = None):
        self.timeout = float(timeout if timeout is not None else settings.EXTERNAL_DNS_TIMEOUT)
        self.nameservers = list(nameservers if nameservers is not None else settings.EXTERNAL_DNS_NAMESERVERS)
        self._resolver = None

    def _get_resolver(self) -> dns.asyncresolver.Resolver:
        if self._resolver is None:
            resolver = dns.asyncresolver.Resolver(configure=not self.nameservers)
            if self.nameservers:
                resolver.nameservers = self.nameservers
            resolver.timeout = self.timeout
            resolver.lifetime = self.timeout
            resolver.cache = None
            self._resolver = resolver
        return self._resolver

    async def lookup_txt(self, name: str) -> List[str]:
        """
        Returns one string per TXT record at ``name`` (multi-string rdata joined).

        NXDOMAIN / no TXT data -> ``[]``. Timeouts and other transport failures
        raise TransientLookupFailure so the caller can retry on a later attempt.
        """
        name = name.rstrip(".")
        try:
            resolver = self._get_resolver()
            answer = await asyncio.wait_for(
                resolver.resolve(name, "TXT", lifetime=self.timeout, search=False),
                timeout=self.timeout + 1,
            )
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            logger.info(f"No TXT data published at {name}")
            return []
        except (dns.exception.Timeout, asyncio.TimeoutError):
            logger.warning(f"TXT lookup for {name} timed out after {self.timeout}s")
            raise TransientLookupFailure(f"Timed out querying TXT at {name}")
        except dns.exception.DNSException as e:
            logger.warning(f"TXT lookup for {name} failed: {type(e).__name__}: {e}")
            raise TransientLookupFailure(f"DNS lookup error for {name}: {type(e).__name__}")

        values = [join_txt_strings(rdata.strings) for rdata in answer]
        logger.debug(f"TXT records for {name}: {values}")
        return values
