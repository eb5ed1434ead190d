"""Async Proxy Validators - Asynchronous HTTP proxy validation using aiohttp"""

import asyncio
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError
from aiohttp.client_exceptions import (
    ClientConnectorError, ClientPayloadError, ClientResponseError, ClientSSLError,
    ServerDisconnectedError
)

from ...proxy_core.config import ScanConfig
from ...proxy_core.exceptions import NetworkError, ProxyProtocolError
from ...proxy_core.models import Candidate, NetworkFailure
from ..progress import EventKind, NullProgressReporter, ProgressEvent, ProgressReporter, Stage
from .validation_config import FailureReason, classify_failure
from .validation_results import ValidationOutcome, ValidationStats


@dataclass(frozen=True)
class ProxyResponse:
    """Response received through a proxy"""
    status: int
    body_size: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class ProxyBackend:
    """Transport that sends one HTTP request through a candidate proxy.

    Implementations raise ``NetworkError`` for connectivity failures and
    ``ProxyProtocolError`` when the proxy answers with something unusable.
    """

    async def __aenter__(self) -> 'ProxyBackend':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def request(self, candidate: Candidate, url: str, timeout: float) -> ProxyResponse:
        raise NotImplementedError

    async def close(self):
        pass


def _connector_failure(error: ClientConnectorError) -> NetworkFailure:
    os_error = getattr(error, 'os_error', None)
    if isinstance(os_error, ConnectionRefusedError):
        return NetworkFailure.CONNECTION_REFUSED
    if isinstance(os_error, socket.gaierror):
        return NetworkFailure.DNS_FAILURE
    if isinstance(os_error, (asyncio.TimeoutError, TimeoutError)):
        return NetworkFailure.TIMEOUT
    return NetworkFailure.HOST_UNREACHABLE


class AiohttpProxyBackend(ProxyBackend):
    """Proxy transport backed by one shared aiohttp session"""

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()
        self._session: Optional[ClientSession] = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def __aenter__(self) -> 'AiohttpProxyBackend':
        self._session = self._create_session()
        return self

    def _create_session(self) -> ClientSession:
        """Create aiohttp session sized for the validation concurrency"""
        ssl_context = True
        if not self.config.verify_ssl:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        connector = aiohttp.TCPConnector(
            ssl=ssl_context,
            limit=self.config.max_concurrent_validations,
            limit_per_host=0,
            force_close=True,  # every proxy is contacted once
            ttl_dns_cache=600,
        )
        headers = {
            'User-Agent': self.config.user_agent,
            'Accept': 'application/json,text/html;q=0.9,*/*;q=0.8',
        }
        return ClientSession(connector=connector, headers=headers)

    async def request(self, candidate: Candidate, url: str, timeout: float) -> ProxyResponse:
        if self._session is None:
            raise RuntimeError("AiohttpProxyBackend must be used as an async context manager")

        try:
            async with self._session.get(url, proxy=candidate.proxy_url,
                                         timeout=ClientTimeout(total=timeout),
                                         allow_redirects=False) as response:
                body = await response.read()
                return ProxyResponse(status=response.status, body_size=len(body))
        except asyncio.TimeoutError as e:
            raise NetworkError(NetworkFailure.TIMEOUT, "Request timeout") from e
        except ClientSSLError as e:
            raise ProxyProtocolError(f"TLS error: {e}") from e
        except ClientConnectorError as e:
            raise NetworkError(_connector_failure(e), str(e)) from e
        except ClientResponseError as e:
            raise ProxyProtocolError(f"HTTP {e.status}: {e.message}", status_code=e.status) from e
        except (ClientPayloadError, ServerDisconnectedError) as e:
            raise ProxyProtocolError(f"Malformed response: {e}") from e
        except ClientError as e:
            raise ProxyProtocolError(str(e) or e.__class__.__name__) from e

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None


class AsyncProxyValidator:
    """Async proxy validator with bounded admission"""

    def __init__(self, backend: ProxyBackend, config: Optional[ScanConfig] = None,
                 reporter: Optional[ProgressReporter] = None):
        self.backend = backend
        self.config = config or ScanConfig()
        self.reporter = reporter or NullProgressReporter()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_validations)
        self.stats = ValidationStats()

        # Instrumentation
        self.active = 0
        self.peak_active = 0

    async def validate(self, candidate: Candidate) -> ValidationOutcome:
        """Validate a single proxy, waiting for an admission slot"""
        async with self.semaphore:
            return await self.check(candidate)

    async def check(self, candidate: Candidate) -> ValidationOutcome:
        """Validate a proxy whose admission slot is held by the caller"""
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        start = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self.backend.request(candidate, self.config.test_url, self.config.test_timeout),
                timeout=self.config.test_timeout
            )
            latency_ms = (time.perf_counter() - start) * 1000

            if response.ok:
                outcome = ValidationOutcome.succeeded(candidate, latency_ms, response.status)
            else:
                outcome = ValidationOutcome.failed(candidate, FailureReason.BAD_STATUS,
                                                   f"HTTP {response.status}", response.status)
        except (NetworkError, ProxyProtocolError, asyncio.TimeoutError) as e:
            outcome = ValidationOutcome.failed(candidate, classify_failure(e), str(e) or "Request timeout",
                                               getattr(e, 'status_code', None))
        except Exception as e:
            self.logger.warning(f"Unexpected error validating {candidate}: {e!r}")
            outcome = ValidationOutcome.failed(candidate, FailureReason.UNKNOWN_ERROR, str(e))
        finally:
            self.active -= 1

        self.stats.record(outcome)
        self._emit(outcome)
        return outcome

    def _emit(self, outcome: ValidationOutcome):
        if outcome.success:
            self.logger.debug(f"{outcome.candidate} working ({outcome.latency_ms:.0f}ms)")
            event = ProgressEvent(Stage.VALIDATE, EventKind.SUCCESS, outcome.candidate,
                                  f"{outcome.latency_ms:.0f}ms")
        else:
            self.logger.debug(f"{outcome.candidate} failed: {outcome.failure_reason.value} {outcome.error_message or ''}")
            event = ProgressEvent(Stage.VALIDATE, EventKind.FAILURE, outcome.candidate,
                                  outcome.failure_reason.value)
        self.reporter.on_event(event)
