from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status

from affiliate_ledger.core.config import settings


def require_admin():
    def _dependency(x_admin_token: str | None = Header(default=None)) -> str:
        expected = settings.ADMIN_API_TOKEN
        if (
            not expected
            or not x_admin_token
            or not hmac.compare_digest(expected.encode("utf-8"), x_admin_token.encode("utf-8"))
        ):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")
        return "admin"

    return _dependency
