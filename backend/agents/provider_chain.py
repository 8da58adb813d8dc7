"""Ordered provider fallback with bounded retry and backoff.

Screenshot rendering and vision inference are both "try these services in
order until one works". ``ProviderChain`` drives that loop for any provider
type: each provider gets at most ``max_retries`` attempts, separated by
``RetryPolicy.backoff_delay``, then the chain pauses and moves on.
"""
import threading
import time
from typing import Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from backend.app.config import RetryPolicy
from backend.app.errors import ExtractionCancelled, ProfileValidationError
from backend.app.logger import logger
from backend.app.models import ProviderAttemptRecord

T = TypeVar("T")


class Provider(Protocol):
    name: str
    max_retries: int


P = TypeVar("P", bound=Provider)


class ExtractionContext:
    """Deadline and cancel token for one extraction request."""

    def __init__(self, deadline: Optional[float] = None, cancel_event: Optional[threading.Event] = None):
        # ``deadline`` is a time.monotonic() timestamp
        self.deadline = deadline
        self.cancel_event = cancel_event or threading.Event()

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "ExtractionContext":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancel_event.set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        if self.cancel_event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cap_timeout(self, timeout: float) -> float:
        """Shrink a per-call timeout to what is left of the deadline."""
        if self.expired():
            raise ExtractionCancelled("deadline reached or request cancelled")
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns False if cancelled or out of time."""
        if seconds <= 0:
            return not self.expired()
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self.cancel_event.wait(seconds)
        return not self.expired()


class ChainOutcome(Generic[T]):
    """Result of running a chain: the first success (if any) plus the attempt trail."""

    def __init__(self, result: Optional[T], provider: Optional[str], attempts: List[ProviderAttemptRecord]):
        self.result = result
        self.provider = provider
        self.attempts = attempts

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class ProviderChain(Generic[P, T]):
    """Runs ``attempt(provider, attempt_index)`` across providers until one returns a result.

    An attempt fails by raising. ``ProfileValidationError`` is recorded as an
    invalid answer; any other exception as a failure. Neither escapes.
    """

    def __init__(
        self,
        stage: str,
        providers: Sequence[P],
        policy: RetryPolicy,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self.stage = stage
        self.providers = list(providers)
        self.policy = policy
        self._sleep = sleep

    def _pause(self, seconds: float, context: ExtractionContext) -> None:
        if seconds <= 0:
            return
        if self._sleep is not None:
            self._sleep(seconds)
        else:
            context.sleep(seconds)

    def run(self, attempt: Callable[[P, int], T], context: Optional[ExtractionContext] = None) -> ChainOutcome[T]:
        context = context or ExtractionContext()
        records: List[ProviderAttemptRecord] = []

        for provider_index, provider in enumerate(self.providers):
            for attempt_index in range(provider.max_retries):
                if context.expired():
                    logger.warning(f"[{self.stage}] Stopping chain: deadline reached or request cancelled")
                    return ChainOutcome(None, None, records)

                started = time.monotonic()
                outcome = "success"
                reason = None
                result = None
                try:
                    result = attempt(provider, attempt_index)
                except ProfileValidationError as e:
                    outcome, reason = "invalid", e.reason
                except Exception as e:
                    outcome, reason = "failure", f"{type(e).__name__}: {e}"
                else:
                    if result is None:
                        outcome, reason = "failure", "provider returned nothing"
                latency = round(time.monotonic() - started, 3)

                records.append(ProviderAttemptRecord(
                    stage=self.stage,
                    provider=provider.name,
                    attempt_index=attempt_index,
                    outcome=outcome,
                    latency=latency,
                    error_reason=reason,
                ))

                if outcome == "success":
                    logger.info(
                        f"[{self.stage}] ✓ {provider.name} succeeded on attempt "
                        f"{attempt_index + 1}/{provider.max_retries} ({latency:.2f}s)"
                    )
                    return ChainOutcome(result, provider.name, records)

                logger.warning(
                    f"[{self.stage}] ✗ {provider.name} attempt {attempt_index + 1}/{provider.max_retries} "
                    f"{outcome}: {reason} ({latency:.2f}s)"
                )
                if attempt_index < provider.max_retries - 1:
                    self._pause(self.policy.backoff_delay(attempt_index), context)

            if provider_index < len(self.providers) - 1:
                logger.info(f"[{self.stage}] {provider.name} exhausted, moving to next provider")
                self._pause(self.policy.inter_provider_delay, context)

        logger.warning(f"[{self.stage}] All {len(self.providers)} providers exhausted")
        return ChainOutcome(None, None, records)
