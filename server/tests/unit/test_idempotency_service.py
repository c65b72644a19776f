"""Unit tests for the idempotency service."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, update

from app.models.idempotency import IdempotencyRecord
from app.services.idempotency_service import (
    IdempotencyInProgressError,
    IdempotencyMismatchError,
    IdempotencyService,
)


@pytest.mark.asyncio
async def test_new_key_has_no_stored_response(test_session):
    service = IdempotencyService(test_session)

    assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) is None


@pytest.mark.asyncio
async def test_stored_response_is_replayed(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "b-1"})

    cached = await service.check_idempotency("key-1", "booking/create", {"a": 1})

    assert cached == (200, {"id": "b-1"})


@pytest.mark.asyncio
async def test_key_is_scoped_to_operation(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "b-1"})

    assert await service.check_idempotency("key-1", "booking/cancel", {"a": 1}) is None


@pytest.mark.asyncio
async def test_same_key_different_body_rejected(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "payment/record", {"amount": 10}, 200, {"ok": True})

    with pytest.raises(IdempotencyMismatchError) as exc_info:
        await service.check_idempotency("key-1", "payment/record", {"amount": 11})

    assert exc_info.value.status_code == 422
    assert exc_info.value.code == "IDEMPOTENCY_KEY_MISMATCH"


@pytest.mark.asyncio
async def test_duplicate_store_keeps_first_response(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "first"})

    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "second"})

    assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) == (200, {"id": "first"})


@pytest.mark.asyncio
async def test_expired_records_are_ignored_and_cleaned_up(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("old", "booking/create", {"a": 1}, 200, {"id": "b-1"})
    await service.store_response("fresh", "booking/create", {"a": 1}, 200, {"id": "b-2"})
    await test_session.execute(
        update(IdempotencyRecord)
        .where(IdempotencyRecord.idempotency_key == "old")
        .values(expires_at=datetime.utcnow() - timedelta(minutes=1))
    )
    await test_session.commit()

    assert await service.check_idempotency("old", "booking/create", {"a": 1}) is None
    assert await service.cleanup_expired_records() == 1

    remaining = (await test_session.execute(select(IdempotencyRecord.idempotency_key))).scalars().all()
    assert remaining == ["fresh"]


@pytest.mark.asyncio
async def test_first_claim_wins_and_second_is_in_progress(test_session):
    """Test that only one request can hold a key while its operation runs."""
    service = IdempotencyService(test_session)

    assert await service.claim("key-1", "booking/create", {"a": 1}) is None

    with pytest.raises(IdempotencyInProgressError) as exc_info:
        await service.claim("key-1", "booking/create", {"a": 1})

    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "IDEMPOTENCY_REQUEST_IN_PROGRESS"
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_claim_with_different_body_is_a_mismatch(test_session):
    service = IdempotencyService(test_session)
    await service.claim("key-1", "payment/record", {"amount": 10})

    with pytest.raises(IdempotencyMismatchError):
        await service.claim("key-1", "payment/record", {"amount": 11})


@pytest.mark.asyncio
async def test_filled_claim_is_replayed(test_session):
    service = IdempotencyService(test_session)
    await service.claim("key-1", "booking/create", {"a": 1})
    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "b-1"})

    assert await service.claim("key-1", "booking/create", {"a": 1}) == (200, {"id": "b-1"})

    records = (await test_session.execute(select(IdempotencyRecord))).scalars().all()
    assert len(records) == 1


@pytest.mark.asyncio
async def test_released_claim_can_be_claimed_again(test_session):
    service = IdempotencyService(test_session)
    await service.claim("key-1", "booking/create", {"a": 1})

    await service.release_claim("key-1", "booking/create")

    assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) is None
    assert await service.claim("key-1", "booking/create", {"a": 1}) is None


@pytest.mark.asyncio
async def test_release_keeps_stored_response(test_session):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "b-1"})

    await service.release_claim("key-1", "booking/create")

    assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) == (200, {"id": "b-1"})


@pytest.mark.asyncio
async def test_lapsed_claim_is_taken_over(test_session):
    """Test that a claim abandoned past its timeout no longer blocks the key."""
    service = IdempotencyService(test_session)
    await service.claim("key-1", "booking/create", {"a": 1})
    await test_session.execute(
        update(IdempotencyRecord)
        .where(IdempotencyRecord.idempotency_key == "key-1")
        .values(expires_at=datetime.utcnow() - timedelta(seconds=1))
    )
    await test_session.commit()

    assert await service.claim("key-1", "booking/create", {"a": 1}) is None
    await service.store_response("key-1", "booking/create", {"a": 1}, 201, {"id": "b-2"})

    assert await service.check_idempotency("key-1", "booking/create", {"a": 1}) == (201, {"id": "b-2"})


@pytest.mark.asyncio
async def test_claim_is_visible_to_other_sessions(file_session_factory):
    """Two requests on separate connections: the second sees the first one's claim."""
    async with file_session_factory() as first, file_session_factory() as second:
        assert await IdempotencyService(first).claim("key-1", "booking/create", {"a": 1}) is None

        with pytest.raises(IdempotencyInProgressError):
            await IdempotencyService(second).claim("key-1", "booking/create", {"a": 1})

        await IdempotencyService(first).store_response("key-1", "booking/create", {"a": 1}, 200, {"id": "b-1"})

        assert await IdempotencyService(second).claim("key-1", "booking/create", {"a": 1}) == (200, {"id": "b-1"})
