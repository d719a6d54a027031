"""Payment gateway call wrapper."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from conflict_kernel.exceptions import ExternalGatewayError
from conflict_kernel.logging_config import get_logger

logger = get_logger("services.gateway")

T = TypeVar("T")


def call_gateway(operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
    """
    Invoke a gateway method, normalizing every failure to ExternalGatewayError.

    Does not retry.
    """
    try:
        return fn(*args, **kwargs)
    except ExternalGatewayError as exc:
        logger.warning(
            "gateway_call_failed",
            extra={"operation": operation, "error": str(exc), "gateway_code": exc.gateway_code},
        )
        raise
    except Exception as exc:
        logger.warning(
            "gateway_call_failed",
            extra={"operation": operation, "error": str(exc), "error_type": type(exc).__name__},
        )
        raise ExternalGatewayError(operation, str(exc)) from exc
