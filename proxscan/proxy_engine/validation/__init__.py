"""Validation Module - Routes a test request through each candidate proxy"""

from .validation_config import FailureReason, classify_failure
from .validation_results import ValidationOutcome, ValidationStats
from .async_validators import (
    ProxyBackend,
    ProxyResponse,
    AiohttpProxyBackend,
    AsyncProxyValidator
)

__all__ = [
    'FailureReason',
    'classify_failure',
    'ValidationOutcome',
    'ValidationStats',
    'ProxyBackend',
    'ProxyResponse',
    'AiohttpProxyBackend',
    'AsyncProxyValidator'
]
