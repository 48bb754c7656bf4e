"""Unit tests for archgroup.exceptions."""

from __future__ import annotations

import pytest

from archgroup.exceptions import (
    ArchGroupError,
    BatchInterruptedError,
    DuplicateSaveNameError,
    MalformedTagError,
    NotFoundError,
    SaveNotFoundError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from archgroup.models.enums import Dimension, ErrorCode
from archgroup.models.results import GroupingResult


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            MalformedTagError("level.x", "bad"),
            StoreUnavailableError("down"),
            StoreTimeoutError("slow"),
            NotFoundError("node", 4),
            DuplicateSaveNameError("Shop", "s"),
        ],
    )
    def test_everything_is_an_archgroup_error(self, exc: ArchGroupError) -> None:
        assert isinstance(exc, ArchGroupError)

    def test_store_errors_share_a_base(self) -> None:
        assert issubclass(StoreTimeoutError, StoreError)
        assert issubclass(BatchInterruptedError, StoreError)

    def test_save_not_found_is_not_found(self) -> None:
        err = SaveNotFoundError("Shop", "baseline")
        assert isinstance(err, NotFoundError)
        assert err.code is ErrorCode.NOT_FOUND
        assert (err.scope, err.name) == ("Shop", "baseline")
        assert "Shop/baseline" in err.message


class TestCodes:
    def test_codes(self) -> None:
        assert MalformedTagError("t", "r").code is ErrorCode.MALFORMED_TAG
        assert StoreUnavailableError("x").code is ErrorCode.STORE_UNAVAILABLE
        assert StoreTimeoutError("x").code is ErrorCode.STORE_TIMEOUT
        assert DuplicateSaveNameError("Shop", "s").code is ErrorCode.DUPLICATE_SAVE_NAME

    def test_to_dict(self) -> None:
        err = NotFoundError("aggregation", "Review")
        assert err.to_dict() == {
            "code": "NOT_FOUND",
            "message": "No aggregation found for 'Review'",
        }

    def test_malformed_tag_keeps_tag_and_reason(self) -> None:
        err = MalformedTagError("level.a//b", "empty name")
        assert err.tag == "level.a//b"
        assert err.reason == "empty name"
        assert str(err) == "Malformed tag 'level.a//b': empty name"


class TestBatchInterrupted:
    def test_carries_partial_result_and_cause(self) -> None:
        result = GroupingResult(
            dimension=Dimension.MODULE, scope="Shop", rewired=[1, 2], pending=[3]
        )
        err = BatchInterruptedError(result, StoreTimeoutError("deadline exceeded"))
        assert err.result is result
        assert err.code is ErrorCode.BATCH_INTERRUPTED
        assert err.cause_code is ErrorCode.STORE_TIMEOUT
        assert "2 re-wired" in err.message
        assert "1 pending" in err.message
        assert err.message.endswith("deadline exceeded")
