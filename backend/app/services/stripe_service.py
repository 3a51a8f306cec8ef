"""
Snapcheck Backend — Stripe Billing Gateway
============================================

What:  Thin wrapper around the Stripe SDK for the subscription operations the
       API needs (look up a customer's subscription, end a trial early).
How:   Every call passes a circuit breaker, then runs the blocking SDK call in
       a worker thread with tenacity retries on transient errors.
Who:   Instantiated once at import; called by AccountService.terminate_trial.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter on connection and
       rate-limit errors (other Stripe errors are not retried)
    2. Circuit breaker: after N consecutive failed operations, calls fail
       immediately until the recovery timeout elapses
    3. Every failure is translated into BillingServiceError (503)
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import stripe
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
    before_sleep_log,
)

from app.config import settings
from app.exceptions import BillingServiceError, CircuitBreakerOpenError

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding calls to the payment provider.

    State Machine:
        CLOSED     → failures are counted; at `failure_threshold` → OPEN
        OPEN       → calls raise CircuitBreakerOpenError until
                     `recovery_timeout` seconds have passed → HALF_OPEN
        HALF_OPEN  → one call goes through; success → CLOSED, failure → OPEN

    Single-process state: each uvicorn worker keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError: the circuit is OPEN and still cooling down.
        """
        if self.state != self.OPEN:
            return True

        elapsed = time.time() - (self.last_failure_time or 0)
        if elapsed < self.recovery_timeout:
            raise CircuitBreakerOpenError(recovery_time=int(self.recovery_timeout - elapsed))

        logger.info("Billing circuit breaker HALF_OPEN after %.1fs", elapsed)
        self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Billing circuit breaker CLOSED (Stripe recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Billing circuit breaker back to OPEN (test call failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Billing circuit breaker OPEN after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Stripe Service
# ══════════════════════════════════════════════════════════════════════════

class StripeService:
    """
    Subscription operations on Stripe.

    Error Handling Chain:
        SDK call fails with a transient error → tenacity retries
        → still failing → circuit breaker failure recorded
        → BillingServiceError raised to the caller (→ 503)
    """

    def __init__(self):
        if settings.stripe_api_key:
            stripe.api_key = settings.stripe_api_key

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "StripeService initialized (configured=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds))",
            bool(settings.stripe_api_key),
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(settings.stripe_api_key)

    async def get_customer_subscription(self, customer_id: str) -> Any:
        """
        Return the subscription of a Stripe customer.

        Raises:
            BillingServiceError: the customer has no subscription, or Stripe failed.
            CircuitBreakerOpenError: too many recent Stripe failures.
        """
        result = await self._execute(
            "subscription.list",
            stripe.Subscription.list,
            customer=customer_id,
            limit=1,
        )
        subscriptions = list(result.data)
        if not subscriptions:
            raise BillingServiceError(
                message="No subscription found for this customer",
                context={"customer_id": customer_id},
            )
        return subscriptions[0]

    async def terminate_trial(self, subscription_id: str) -> Any:
        """End the trial of a subscription immediately (billing starts now)."""
        return await self._execute(
            "subscription.modify",
            stripe.Subscription.modify,
            subscription_id,
            trial_end="now",
        )

    @staticmethod
    def timestamp_to_date(timestamp: int) -> datetime:
        """Stripe timestamps are Unix seconds."""
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    async def _execute(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        request_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        logger.info("[%s] Stripe %s", request_id, operation)

        try:
            result = await self._call_stripe_with_retry(func, *args, **kwargs)
            self.circuit_breaker.record_success()
            return result

        except stripe.StripeError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Stripe %s failed: %s", request_id, operation, str(e))
            raise BillingServiceError(
                message="Billing operation failed. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "operation": operation},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Unexpected Stripe error during %s: %s",
                request_id,
                operation,
                str(e),
                exc_info=True,
            )
            raise BillingServiceError(
                message="An unexpected error occurred while contacting the billing service.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

    @retry(
        retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_stripe_with_retry(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Runs one SDK call in a worker thread; retried by tenacity.

        Kept separate from _execute so that only the SDK call is retried,
        not the circuit breaker check.
        """
        start_time = time.time()
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            logger.warning(
                "Stripe call %s failed after %.0fms: %s",
                getattr(func, "__qualname__", func),
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise
        logger.debug(
            "Stripe call %s completed in %.0fms",
            getattr(func, "__qualname__", func),
            (time.time() - start_time) * 1000,
        )
        return result


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state shared by all requests of this process
stripe_service = StripeService()
