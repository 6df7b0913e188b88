from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from core.errors import StorageUnavailable
from core.retry import is_transient, with_storage_retry


def _operational() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server has gone away"))


def test_transient_failure_then_success() -> None:
    db = MagicMock()
    outcomes = [_operational(), _operational(), "ok"]

    def flaky():
        result = outcomes.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    assert with_storage_retry(db, flaky, attempts=3, backoff=0) == "ok"
    assert db.rollback.call_count == 2


def test_exhausted_retries_raise_storage_unavailable() -> None:
    db = MagicMock()
    fn = MagicMock(side_effect=_operational())

    with pytest.raises(StorageUnavailable) as exc_info:
        with_storage_retry(db, fn, attempts=4, backoff=0)

    assert fn.call_count == 4
    assert isinstance(exc_info.value.__cause__, OperationalError)


def test_integrity_errors_are_not_retried() -> None:
    db = MagicMock()
    fn = MagicMock(side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))

    with pytest.raises(IntegrityError):
        with_storage_retry(db, fn, attempts=5, backoff=0)
    assert fn.call_count == 1
    db.rollback.assert_not_called()


def test_arguments_are_forwarded() -> None:
    fn = MagicMock(return_value=7)
    assert with_storage_retry(MagicMock(), fn, 1, 2, key="v", attempts=1, backoff=0) == 7
    fn.assert_called_once_with(1, 2, key="v")


def test_invalidated_connection_counts_as_transient() -> None:
    err = DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)
    assert is_transient(err)
    assert not is_transient(IntegrityError("INSERT", {}, Exception("dup")))
