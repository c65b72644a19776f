"""Claim-execute-store helper shared by the mutating routers."""

import logging
from typing import Any, Awaitable, Callable

from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ProblemDetailsException
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)


async def handle_idempotent_operation(
    operation: str,
    idempotency_key: str,
    request_body: dict[str, Any],
    operation_func: Callable[[], Awaitable[dict[str, Any]]],
    db: AsyncSession
) -> JSONResponse:
    """
    Run ``operation_func`` once per Idempotency-Key and replay its response afterwards.

    The key is claimed before the operation runs, so a concurrent request with
    the same key gets a retryable 409 instead of running the operation again.
    Business errors are stored and replayed like successes. Retryable errors
    and server errors release the claim, so the client can retry with the same key.
    """
    idempotency_service = IdempotencyService(db)

    cached_response = await idempotency_service.claim(
        idempotency_key=idempotency_key,
        operation=operation,
        request_body=request_body
    )

    if cached_response:
        status_code, response_body = cached_response
        return JSONResponse(
            status_code=status_code,
            content=response_body,
            headers={"Idempotent-Replayed": "true"}
        )

    try:
        response_dict = await operation_func()

    except ProblemDetailsException as e:
        if not e.retryable and e.status_code < 500:
            await idempotency_service.store_response(
                idempotency_key=idempotency_key,
                operation=operation,
                request_body=request_body,
                status_code=e.status_code,
                response_body=e.problem_details
            )
        else:
            await idempotency_service.release_claim(idempotency_key, operation)
        raise

    except Exception:
        logger.warning(
            "Idempotent operation failed unexpectedly - releasing claim",
            extra={"idempotency_key": idempotency_key, "operation": operation}
        )
        await idempotency_service.release_claim(idempotency_key, operation)
        raise

    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        operation=operation,
        request_body=request_body,
        status_code=200,
        response_body=response_dict
    )

    return JSONResponse(status_code=200, content=response_dict)
