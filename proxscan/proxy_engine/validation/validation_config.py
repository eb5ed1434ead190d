"""Validation Configuration - Failure taxonomy and error classification for proxy validation"""

import asyncio
import ssl
from enum import Enum

from ...proxy_core.exceptions import NetworkError, ProxyProtocolError
from ...proxy_core.models import NetworkFailure


class FailureReason(Enum):
    """Detailed failure reasons for better debugging"""
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    HOST_UNREACHABLE = "host_unreachable"
    DNS_FAILURE = "dns_failure"
    PROTOCOL_ERROR = "protocol_error"
    BAD_STATUS = "bad_status"
    UNKNOWN_ERROR = "unknown_error"


_NETWORK_REASONS = {
    NetworkFailure.TIMEOUT: FailureReason.TIMEOUT,
    NetworkFailure.CONNECTION_REFUSED: FailureReason.CONNECTION_REFUSED,
    NetworkFailure.HOST_UNREACHABLE: FailureReason.HOST_UNREACHABLE,
    NetworkFailure.DNS_FAILURE: FailureReason.DNS_FAILURE,
}


def classify_failure(error: BaseException) -> FailureReason:
    """Map an exception raised while testing a proxy onto a failure reason"""
    if isinstance(error, NetworkError):
        return _NETWORK_REASONS.get(error.kind, FailureReason.UNKNOWN_ERROR)
    if isinstance(error, ProxyProtocolError):
        if error.status_code is not None:
            return FailureReason.BAD_STATUS
        return FailureReason.PROTOCOL_ERROR
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return FailureReason.TIMEOUT
    if isinstance(error, ConnectionRefusedError):
        return FailureReason.CONNECTION_REFUSED
    if isinstance(error, ssl.SSLError):
        return FailureReason.PROTOCOL_ERROR
    if isinstance(error, OSError):
        return FailureReason.HOST_UNREACHABLE
    return FailureReason.UNKNOWN_ERROR
