"""
api/errors.py -- Bridge from service-layer errors to HTTP.

Service methods return Outcome objects; route handlers call
raise_for_error() on a failed one. The resulting HTTPException carries the
structured {code, message, detail} dict, which api/main.py's handler wraps in
the standard ErrorResponse envelope.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException

from auth.errors import ServiceError


def raise_for_error(error: ServiceError) -> NoReturn:
    raise HTTPException(status_code=error.status_code, detail=error.as_dict())
