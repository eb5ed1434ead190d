"""Validation Results - Data structures for proxy validation results"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from ...proxy_core.models import Candidate
from .validation_config import FailureReason


@dataclass(frozen=True)
class ValidationOutcome:
    """Outcome of routing one HTTP request through a candidate"""
    candidate: Candidate
    success: bool
    latency_ms: Optional[float] = None  # dispatch -> full response
    failure_reason: Optional[FailureReason] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def succeeded(cls, candidate: Candidate, latency_ms: float, status_code: int) -> 'ValidationOutcome':
        return cls(candidate=candidate, success=True, latency_ms=round(latency_ms, 2), status_code=status_code)

    @classmethod
    def failed(cls, candidate: Candidate, reason: FailureReason, message: Optional[str] = None,
               status_code: Optional[int] = None) -> 'ValidationOutcome':
        return cls(candidate=candidate, success=False, failure_reason=reason,
                   error_message=message, status_code=status_code)


@dataclass
class ValidationStats:
    """Aggregate counters for a validation run"""
    total: int = 0
    successful: int = 0
    failures: Dict[FailureReason, int] = field(default_factory=dict)

    def record(self, outcome: ValidationOutcome):
        self.total += 1
        if outcome.success:
            self.successful += 1
        else:
            self.failures[outcome.failure_reason] = self.failures.get(outcome.failure_reason, 0) + 1

    @property
    def failed(self) -> int:
        return self.total - self.successful
