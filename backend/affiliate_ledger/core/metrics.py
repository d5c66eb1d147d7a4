# Prometheus metrics for the HTTP surface and the ledger itself.
# Ledger counters are labelled by outcome only; affiliate ids stay
# out of label values to keep series cardinality flat.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware


REQUEST_DURATION_MS = Histogram(
    "request_duration_ms",
    "API request duration in milliseconds",
    ["method", "route"],
    buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2000, 5000, 10000],
)
REQUESTS_TOTAL = Counter(
    "requests_total",
    "Total API requests",
    ["method", "route", "status_code"],
)

COMMISSION_EVENTS_TOTAL = Counter(
    "affiliate_commission_events_total",
    "Commission ledger transitions",
    ["event"],  # recorded|duplicate|approved|cancelled|reversal_rejected
)
WITHDRAWAL_EVENTS_TOTAL = Counter(
    "affiliate_withdrawal_events_total",
    "Withdrawal workflow transitions",
    ["event"],  # created|approved|rejected|completed
)
ATTRIBUTION_EVENTS_TOTAL = Counter(
    "affiliate_attribution_events_total",
    "Promo code attribution outcomes",
    ["outcome"],
)
LEDGER_RETRY_TOTAL = Counter(
    "affiliate_ledger_retry_total",
    "Optimistic-lock retries on affiliate ledger operations",
    ["operation"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        response = await call_next(request)
        duration_ms = (monotonic() - start) * 1000.0

        route = request.scope.get("route")
        route_path = getattr(route, "path", None) or request.url.path
        REQUEST_DURATION_MS.labels(request.method, route_path).observe(duration_ms)
        REQUESTS_TOTAL.labels(request.method, route_path, str(response.status_code)).inc()
        return response


def _label(value: object | None, default: str = "unknown") -> str:
    if value is None:
        return default
    if isinstance(value, str) and not value.strip():
        return default
    return str(value)


def record_commission_event(event: str) -> None:
    COMMISSION_EVENTS_TOTAL.labels(event=_label(event)).inc()


def record_withdrawal_event(event: str) -> None:
    WITHDRAWAL_EVENTS_TOTAL.labels(event=_label(event)).inc()


def record_attribution(outcome: str) -> None:
    ATTRIBUTION_EVENTS_TOTAL.labels(outcome=_label(outcome)).inc()


def record_ledger_retry(operation: str) -> None:
    LEDGER_RETRY_TOTAL.labels(operation=_label(operation)).inc()
