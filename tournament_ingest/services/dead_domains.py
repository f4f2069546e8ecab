from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Protocol

import dns.asyncresolver
import dns.exception
import dns.resolver

from tournament_ingest.core.errors import DeadDomain
from tournament_ingest.services.records import DeadDomainRecord

logger = logging.getLogger(__name__)

# True: resolves, False: does not exist, None: inconclusive (timeout, server trouble)
DomainResolver = Callable[[str], Awaitable[bool | None]]


class DeadDomainRepository(Protocol):
    async def get_dead_domain(self, domain: str) -> DeadDomainRecord | None: ...

    async def record_domain_failure(self, domain: str, *, error: str | None) -> DeadDomainRecord: ...

    async def clear_dead_domain(self, domain: str) -> bool: ...

    async def list_dead_domains_due(self, *, checked_before: datetime, limit: int) -> list[DeadDomainRecord]: ...


async def resolve_domain(domain: str, *, timeout_seconds: float = 5.0) -> bool | None:
    for record_type in ("A", "AAAA"):
        try:
            await dns.asyncresolver.resolve(domain, record_type, lifetime=timeout_seconds)
            return True
        except dns.resolver.NXDOMAIN:
            return False
        except dns.resolver.NoAnswer:
            continue
        except (dns.resolver.NoNameservers, dns.exception.Timeout) as exc:
            logger.info("dns lookup inconclusive domain=%s error=%s", domain, type(exc).__name__)
            return None
    return False


class DeadDomainTracker:
    """Persisted memory of domains that stopped resolving.

    A domain counts as dead once it failed `failure_threshold` times; it is
    retried after `recheck_after` has passed since the last check.
    """

    def __init__(
        self,
        repository: DeadDomainRepository,
        *,
        failure_threshold: int = 2,
        recheck_after: timedelta = timedelta(hours=72),
        dns_timeout_seconds: float = 5.0,
        concurrency: int = 5,
        resolver: DomainResolver | None = None,
    ) -> None:
        self.repository = repository
        self.failure_threshold = max(1, failure_threshold)
        self.recheck_after = recheck_after
        self.dns_timeout_seconds = dns_timeout_seconds
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._resolver = resolver

    async def is_dead(self, domain: str | None, *, now: datetime | None = None) -> bool:
        if not domain:
            return False
        record = await self.repository.get_dead_domain(domain)
        if record is None or record.failure_count < self.failure_threshold:
            return False
        current = now or datetime.now(timezone.utc)
        return current - record.last_checked_at < self.recheck_after

    async def ensure_alive(self, domain: str | None, *, now: datetime | None = None) -> None:
        if await self.is_dead(domain, now=now):
            raise DeadDomain(domain or "")

    async def check(self, domain: str) -> bool | None:
        """Resolve `domain` now and persist the outcome."""
        async with self._semaphore:
            if self._resolver is not None:
                resolves = await self._resolver(domain)
            else:
                resolves = await resolve_domain(domain, timeout_seconds=self.dns_timeout_seconds)

        if resolves is True:
            if await self.repository.clear_dead_domain(domain):
                logger.info("domain resolves again domain=%s", domain)
        elif resolves is False:
            record = await self.repository.record_domain_failure(domain, error="nxdomain")
            logger.info("domain failed dns domain=%s failures=%s", domain, record.failure_count)
        return resolves

    async def recheck_due(self, *, limit: int = 100, now: datetime | None = None) -> dict[str, int]:
        current = now or datetime.now(timezone.utc)
        due = await self.repository.list_dead_domains_due(checked_before=current - self.recheck_after, limit=limit)
        results = await asyncio.gather(*(self.check(record.domain) for record in due))
        return {
            "processed": len(due),
            "revived": sum(1 for result in results if result is True),
            "still_dead": sum(1 for result in results if result is False),
            "inconclusive": sum(1 for result in results if result is None),
        }
