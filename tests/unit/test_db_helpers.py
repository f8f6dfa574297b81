import pytest

from webinarwise.db.helpers import DatabaseError, with_db_retry


@pytest.mark.asyncio
async def test_retries_while_store_unreachable():
    calls = []

    @with_db_retry(max_retries=3, base_delay=0)
    async def load():
        calls.append(1)
        if len(calls) < 3:
            raise DatabaseError("connection refused", operation="fetch_one", recoverable=False)
        return {"id": "conn-1"}

    assert await load() == {"id": "conn-1"}
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_query_errors_are_not_retried():
    calls = []

    @with_db_retry(max_retries=3, base_delay=0)
    async def load():
        calls.append(1)
        raise DatabaseError("syntax error", operation="fetch_one")

    with pytest.raises(DatabaseError):
        await load()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    @with_db_retry(max_retries=2, base_delay=0)
    async def load():
        raise DatabaseError("connection refused", recoverable=False)

    with pytest.raises(DatabaseError):
        await load()
