"""Idempotency service for replaying responses to repeated mutating requests."""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(ProblemDetailsException):
    """Exception when idempotency key is reused with different request body."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=(
                f"Idempotency key '{idempotency_key}' was already used for '{operation}' "
                f"with a different request body"
            ),
            type_uri="https://example.com/problems/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


class IdempotencyInProgressError(ProblemDetailsException):
    """Another request holding the same Idempotency-Key has not finished yet."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=409,
            title="Request In Progress",
            detail=(
                f"A request with idempotency key '{idempotency_key}' for '{operation}' "
                f"is still being processed. Retry the request."
            ),
            type_uri="https://example.com/problems/idempotency-request-in-progress",
            extensions={
                "code": "IDEMPOTENCY_REQUEST_IN_PROGRESS",
                "retryable": True,
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


class IdempotencyService:
    """
    Service for handling idempotent operations.

    A request first claims its key by inserting a placeholder record, and only
    the request whose insert succeeds runs the operation. The placeholder is
    later filled with the response, or deleted when the outcome must not be
    replayed. An abandoned placeholder lapses after the claim timeout.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _compute_request_hash(self, request_body: dict[str, Any]) -> str:
        """Compute SHA-256 hash of normalized request body."""
        normalized = json.dumps(request_body, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check_idempotency(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any]
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Return the stored response for a repeated request, if there is one.

        Args:
            idempotency_key: Client-supplied Idempotency-Key
            operation: Operation name, e.g. ``booking/create``
            request_body: Request body to hash and compare

        Returns:
            ``(status_code, response_body)`` for a replay, None for a new request

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
            IdempotencyInProgressError: If the key is claimed by an unfinished request
        """
        request_hash = self._compute_request_hash(request_body)

        stmt = (
            select(IdempotencyRecord)
            .where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.expires_at > datetime.utcnow()
            )
            .execution_options(populate_existing=True)
        )
        existing_record = (await self.db.execute(stmt)).scalar_one_or_none()

        if existing_record is None:
            return None

        if existing_record.request_body_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                    "existing_hash": existing_record.request_body_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(idempotency_key, operation)

        if existing_record.response_status_code is None:
            logger.info(
                "Idempotency key is claimed by a request still in progress",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )
            raise IdempotencyInProgressError(idempotency_key, operation)

        logger.info(
            "Returning cached idempotent response",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "status_code": existing_record.response_status_code
            }
        )

        return existing_record.response_status_code, json.loads(existing_record.response_body)

    async def claim(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any]
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Claim an Idempotency-Key before running its operation.

        Returns:
            None when this request now owns the key and must run the operation,
            otherwise the stored ``(status_code, response_body)`` to replay

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
            IdempotencyInProgressError: If another request holds the claim
        """
        now = datetime.utcnow()

        # A lapsed record for this key must not block the insert
        await self.db.execute(
            delete(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.expires_at <= now
            )
        )

        placeholder = IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_body_hash=self._compute_request_hash(request_body),
            expires_at=now + timedelta(seconds=settings.idempotency_claim_timeout_seconds)
        )

        try:
            self.db.add(placeholder)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            cached_response = await self.check_idempotency(idempotency_key, operation, request_body)
            if cached_response is None:
                # The other claim was released or lapsed between our insert and read
                raise IdempotencyInProgressError(idempotency_key, operation)
            return cached_response

        logger.debug(
            "Idempotency key claimed",
            extra={"idempotency_key": idempotency_key, "operation": operation}
        )
        return None

    async def store_response(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any]
    ) -> None:
        """
        Store the response of an operation for later replays.

        Fills this key's claim when there is one. Otherwise a new record is
        inserted, and a record stored first by a concurrent request is left in
        place.
        """
        expires_at = datetime.utcnow() + timedelta(hours=settings.idempotency_ttl_hours)
        serialized = json.dumps(response_body, sort_keys=True, separators=(',', ':'), default=str)

        stmt = (
            select(IdempotencyRecord)
            .where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.response_status_code.is_(None)
            )
            .execution_options(populate_existing=True)
        )
        record = (await self.db.execute(stmt)).scalar_one_or_none()

        if record is not None:
            record.response_status_code = status_code
            record.response_body = serialized
            record.expires_at = expires_at
            await self.db.commit()
            return

        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_body_hash=self._compute_request_hash(request_body),
            response_status_code=status_code,
            response_body=serialized,
            expires_at=expires_at
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists (race condition)",
                extra={
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                    "error": str(e)
                }
            )

    async def release_claim(self, idempotency_key: str, operation: str) -> None:
        """
        Drop an unfilled claim so the client can retry with the same key.

        Any uncommitted work of the failed operation is rolled back first.
        """
        await self.db.rollback()
        await self.db.execute(
            delete(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.response_status_code.is_(None)
            )
        )
        await self.db.commit()
        logger.info(
            "Idempotency claim released",
            extra={"idempotency_key": idempotency_key, "operation": operation}
        )

    async def cleanup_expired_records(self) -> int:
        """
        Delete expired idempotency records, lapsed claims included.

        Returns:
            Number of records deleted
        """
        stmt = delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= datetime.utcnow())
        result = await self.db.execute(stmt)
        await self.db.commit()

        if result.rowcount:
            logger.info(
                "Cleaned up expired idempotency records",
                extra={"deleted_count": result.rowcount}
            )

        return result.rowcount
