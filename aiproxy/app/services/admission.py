"""Request admission for the inference proxy.

Every proxied request walks the same path:

    identify client -> consult rate limiter -> validate payload
    -> admit (record quota) -> forward to provider -> update telemetry

A throttled client is turned away before its payload is looked at, and no
provider call is ever made for a request that has not been admitted.
The limiter is only peeked at before validation, so an invalid request
does not use up quota.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from aiproxy.app.core.clock import ClockSource, SystemClock
from aiproxy.app.core.config import settings
from aiproxy.app.core.logging import get_log_context, get_logger, mask_identity
from aiproxy.app.exceptions import (
    ClientError,
    ConfigurationError,
    InternalError,
    ProxyException,
    RateLimitExceededError,
    UpstreamError,
)
from aiproxy.app.providers import BaseProvider, get_provider
from aiproxy.app.services.identity import resolve_client_identity
from aiproxy.app.services.payload import PromptRequest, parse_body, validate_prompt_request
from aiproxy.app.services.rate_limit import (
    RateLimitDecision,
    SlidingWindowRateLimiter,
    get_rate_limiter,
)
from aiproxy.app.services.usage_stats import UsageTelemetry, get_usage_telemetry

logger = get_logger(__name__)


class RequestOutcome(str, Enum):
    """Terminal state of a handled request."""
    PREFLIGHT = "preflight"
    STATS = "stats"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    REJECTED_INVALID = "rejected_invalid"
    DENIED = "denied"
    UPSTREAM_FAILED = "upstream_failed"
    SUCCEEDED = "succeeded"


def cors_headers() -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
        "Content-Type": "application/json",
    }


@dataclass
class ProxyResponse:
    """Framework-neutral response produced by the handler.

    ``body`` is JSON-serializable, or None for an empty body.
    """
    status_code: int
    body: Any = None
    outcome: Optional[RequestOutcome] = None
    headers: Dict[str, str] = field(default_factory=cors_headers)

    @classmethod
    def from_exception(
        cls, exc: ProxyException, outcome: Optional[RequestOutcome] = None
    ) -> "ProxyResponse":
        response = cls(exc.status_code, exc.to_response(), outcome)
        if isinstance(exc, RateLimitExceededError):
            response.headers["Retry-After"] = str(exc.retry_after)
        return response


class RequestAdmissionHandler:
    """Handles one inbound proxy request end to end.

    Holds no per-request state; the limiter and telemetry it is given are
    the process-wide instances.
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter,
        telemetry: UsageTelemetry,
        provider_factory: Callable[[], BaseProvider] = get_provider,
        clock: Optional[ClockSource] = None,
    ):
        self.rate_limiter = rate_limiter
        self.telemetry = telemetry
        self.provider_factory = provider_factory
        self.clock = clock or SystemClock()

    async def handle(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes = b"",
        request_id: Optional[str] = None,
    ) -> ProxyResponse:
        method = method.upper()

        if method == "OPTIONS":
            return ProxyResponse(200, None, RequestOutcome.PREFLIGHT)

        if method == "GET" and "/stats" in path:
            snapshot = self.telemetry.snapshot(self.clock.now())
            return ProxyResponse(
                200, snapshot.model_dump(by_alias=True), RequestOutcome.STATS
            )

        if method != "POST":
            return ProxyResponse(
                405, {"error": "Method not allowed"}, RequestOutcome.METHOD_NOT_ALLOWED
            )

        return await self._handle_post(headers, body, request_id)

    async def _handle_post(
        self,
        headers: Mapping[str, str],
        body: bytes,
        request_id: Optional[str],
    ) -> ProxyResponse:
        user_agent = _header(headers, "user-agent")

        try:
            identity = resolve_client_identity(headers)
        except ClientError as exc:
            self.telemetry.record_request(
                settings.unknown_client_identity, False, user_agent
            )
            return ProxyResponse.from_exception(exc, RequestOutcome.REJECTED_INVALID)

        log_context = get_log_context(
            request_id=request_id, client_id=mask_identity(identity)
        )

        # Throttled clients are answered before the payload is parsed.
        decision = self.rate_limiter.check(identity, self.clock.now())
        if not decision.allowed:
            return self._deny(decision, log_context)

        try:
            prompt_request = validate_prompt_request(parse_body(body))
        except ClientError as exc:
            self.telemetry.record_request(identity, False, user_agent)
            return ProxyResponse.from_exception(exc, RequestOutcome.REJECTED_INVALID)

        # Another request from this client may have been admitted since the
        # peek, so the recording check can still deny.
        decision = self.rate_limiter.check_and_record(identity, self.clock.now())
        if not decision.allowed:
            return self._deny(decision, log_context)

        return await self._forward(
            identity, prompt_request, user_agent, log_context
        )

    async def _forward(
        self,
        identity: str,
        prompt_request: PromptRequest,
        user_agent: Optional[str],
        log_context: Dict[str, Any],
    ) -> ProxyResponse:
        prompt_length = len(prompt_request.prompt)
        start = time.perf_counter()

        try:
            provider = self.provider_factory()
            if not provider.is_configured:
                raise ConfigurationError()
            data = await provider.generate(prompt_request)
        except UpstreamError as exc:
            logger.warning(
                f"Inference provider error: {exc.detail}", extra=log_context
            )
            self.telemetry.record_request(identity, False, user_agent, prompt_length)
            return ProxyResponse.from_exception(exc, RequestOutcome.UPSTREAM_FAILED)
        except ConfigurationError as exc:
            logger.error("Inference provider API key is not set", extra=log_context)
            self.telemetry.record_request(identity, False, user_agent, prompt_length)
            return ProxyResponse.from_exception(exc, RequestOutcome.UPSTREAM_FAILED)
        except asyncio.CancelledError:
            self.telemetry.record_request(identity, False, user_agent, prompt_length)
            raise
        except Exception:
            logger.exception("Proxy request failed", extra=log_context)
            self.telemetry.record_request(identity, False, user_agent, prompt_length)
            return ProxyResponse.from_exception(
                InternalError(), RequestOutcome.UPSTREAM_FAILED
            )

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.debug(
            "Inference completed", extra={**log_context, "duration_ms": duration_ms}
        )
        self.telemetry.record_request(identity, True, user_agent, prompt_length)
        return ProxyResponse(200, data, RequestOutcome.SUCCEEDED)

    def _deny(
        self, decision: RateLimitDecision, log_context: Dict[str, Any]
    ) -> ProxyResponse:
        self.telemetry.record_rate_limit_hit()
        logger.info(
            f"Rate limit exceeded for client {log_context.get('client_id')} "
            f"({decision.tier}: {decision.limit} requests)",
            extra={**log_context, "tier": decision.tier},
        )
        exc = RateLimitExceededError(
            tier=decision.tier, limit=decision.limit, retry_after=decision.retry_after
        )
        return ProxyResponse.from_exception(exc, RequestOutcome.DENIED)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def get_admission_handler() -> RequestAdmissionHandler:
    """Build a handler over the process-wide limiter and telemetry."""
    return RequestAdmissionHandler(
        rate_limiter=get_rate_limiter(),
        telemetry=get_usage_telemetry(),
    )
