from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from skybot.db.dynamodb import retry
from skybot.db.dynamodb.errors import DdbConflict, DdbThrottled
from skybot.db.dynamodb.retry import RetryPolicy, ddb_call


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code}, "ResponseMetadata": {"RequestId": "req-1"}}, "UpdateItem")


def test_conditional_failure_maps_to_conflict_without_retry():
    calls: list[int] = []

    def _op():
        calls.append(1)
        raise _client_error("ConditionalCheckFailedException")

    with pytest.raises(DdbConflict) as ei:
        ddb_call("UpdateItem", _op, table_name="t", key={"pk": "p"})
    assert len(calls) == 1
    assert ei.value.aws_request_id == "req-1"


def test_throttling_is_retried_with_backoff(monkeypatch):
    monkeypatch.setattr(retry.time, "sleep", lambda _s: None)
    outcomes = [_client_error("ThrottlingException"), _client_error("ThrottlingException"), "ok"]

    def _op():
        out = outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return out

    assert ddb_call("GetItem", _op, retry_policy=RetryPolicy(max_attempts=3)) == "ok"


def test_throttling_gives_up_after_max_attempts(monkeypatch):
    monkeypatch.setattr(retry.time, "sleep", lambda _s: None)

    def _op():
        raise _client_error("ProvisionedThroughputExceededException")

    with pytest.raises(DdbThrottled) as ei:
        ddb_call("Query", _op, retry_policy=RetryPolicy(max_attempts=2))
    assert ei.value.retryable is True
