# This file bootstraps the FastAPI app, wires up the logging and metrics
# middlewares, maps ledger errors to JSON responses, and includes the
# routers.

import os

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from affiliate_ledger.core.db import Base, engine
from affiliate_ledger.core.errors import AffiliateError
from affiliate_ledger.core.logging import APILoggingMiddleware
from affiliate_ledger.core.metrics import MetricsMiddleware
import affiliate_ledger.models  # noqa: F401  registers tables on Base.metadata

from affiliate_ledger.api.admin_affiliates import router as admin_affiliates_router
from affiliate_ledger.api.affiliates import router as affiliates_router
from affiliate_ledger.api.attribution import router as attribution_router
from affiliate_ledger.api.order_events import router as order_events_router

# Create tables right away for local runs. Deployments run alembic
# and set SKIP_MIGRATIONS=1.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Affiliate Ledger")


@app.exception_handler(AffiliateError)
def handle_affiliate_error(_request, exc: AffiliateError):
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    response.headers["X-Error-Code"] = exc.code
    return response


# Observability: structured request logs and Prometheus timings.
app.add_middleware(APILoggingMiddleware)
app.add_middleware(MetricsMiddleware)

for router in (
    attribution_router,
    affiliates_router,
    admin_affiliates_router,
    order_events_router,
):
    app.include_router(router)


# /metrics endpoint (Prometheus scraping)
@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health():
    return {"status": "ok"}
