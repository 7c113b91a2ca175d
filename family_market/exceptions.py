"""Exception hierarchy for the Family Market backend."""

from __future__ import annotations

from typing import Any


class FamilyMarketError(Exception):
    """Base class for all application errors."""


class ConfigurationError(FamilyMarketError):
    """A credential or setting required at call time is missing."""


class GatewayError(FamilyMarketError):
    """The payment gateway answered with an error or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GatewayNotFoundError(GatewayError):
    """The gateway has no record for the requested id (HTTP 404)."""
