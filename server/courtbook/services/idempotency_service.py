"""Idempotency service for replaying non-idempotent requests."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(ProblemDetailsException):
    """Exception when idempotency key is reused with different request body."""

    def __init__(self, idempotency_key: str, method: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            code="IDEMPOTENCY_KEY_MISMATCH",
            detail=f"Idempotency key '{idempotency_key}' was already used for method '{method}' with different request body",
            extensions={
                "idempotency_key": idempotency_key,
                "method": method,
            },
        )


class IdempotencyService:
    """Service for handling idempotent operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _compute_request_hash(self, request_body: dict[str, Any]) -> str:
        """Compute SHA-256 hash of normalized request body."""
        normalized = json.dumps(request_body, sort_keys=True, separators=(',', ':'), default=str)
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check_idempotency(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        user_id: str = "",
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Return the stored response for a repeated request, if there is one.

        Args:
            idempotency_key: Client-supplied key
            method: Operation name
            request_body: Request body to hash and compare
            user_id: Caller the key belongs to

        Returns:
            Tuple of (status_code, response_body), or None for a new request

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        request_hash = self._compute_request_hash(request_body)

        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.method == method,
            IdempotencyRecord.user_id == user_id,
            IdempotencyRecord.expires_at > utcnow()
        )
        result = await self.db.execute(stmt)
        existing_record = result.scalar_one_or_none()

        if existing_record is None:
            return None

        if existing_record.request_body_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "method": method,
                    "existing_hash": existing_record.request_body_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(idempotency_key, method)

        logger.info(
            "Returning cached idempotent response",
            extra={
                "idempotency_key": idempotency_key,
                "method": method,
                "status_code": existing_record.response_status_code,
            }
        )
        return existing_record.response_status_code, json.loads(existing_record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any],
        user_id: str = "",
        ttl_hours: int | None = None,
    ) -> None:
        """Store the response of a completed operation for later replay."""
        ttl_hours = ttl_hours or settings.idempotency_ttl_hours
        expires_at = utcnow() + timedelta(hours=ttl_hours)

        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            method=method,
            user_id=user_id,
            request_body_hash=self._compute_request_hash(request_body),
            response_status_code=status_code,
            response_body=json.dumps(response_body, sort_keys=True, separators=(',', ':'), default=str),
            expires_at=expires_at
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError as e:
            # A concurrent request with the same key stored first
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists (race condition)",
                extra={"idempotency_key": idempotency_key, "method": method, "error": str(e)}
            )

    async def cleanup_expired_records(self) -> int:
        """Delete expired idempotency records and return how many went."""
        result = await self.db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= utcnow())
        )
        await self.db.commit()

        if result.rowcount > 0:
            logger.info(
                "Cleaned up expired idempotency records",
                extra={"deleted_count": result.rowcount}
            )
        return result.rowcount
