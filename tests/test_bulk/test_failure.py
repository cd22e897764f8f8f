"""失败处理策略单元测试."""

import pytest

from elasticsink.bulk.exceptions import (
    BulkRetryExhaustedError,
    EngineFailure,
    PartialOperationFailure,
    TransportFailure,
)
from elasticsink.bulk.failure import (
    BackoffPolicy,
    BackoffType,
    FailFastFailureHandler,
    FailureHandlingPolicy,
    IgnoreFailureHandler,
    ResolutionType,
    RetryFailureHandler,
    create_failure_handler,
)
from elasticsink.bulk.models import BulkAction, BulkItemResult, BulkOperation, FlushAttempt


def _ops(count: int) -> list[BulkOperation]:
    return [
        BulkOperation(BulkAction.INDEX, "test-index", str(i), {"id": i})
        for i in range(count)
    ]


def _partial(
    attempt: FlushAttempt, failed: set[int], status: int = 429
) -> PartialOperationFailure:
    attempt.item_results = [
        BulkItemResult(
            operation=op,
            status=status if i in failed else 201,
            ok=i not in failed,
            error_reason="rejected" if i in failed else None,
        )
        for i, op in enumerate(attempt.operations)
    ]
    return PartialOperationFailure("partial", attempt.failed_items)


class TestBackoffPolicy:
    """BackoffPolicy 测试."""

    def test_constant_backoff(self) -> None:
        """测试固定退避."""
        policy = BackoffPolicy(type=BackoffType.CONSTANT, delay_ms=100)
        assert policy.get_delay(0) == pytest.approx(0.1)
        assert policy.get_delay(5) == pytest.approx(0.1)

    def test_exponential_backoff(self) -> None:
        """测试指数退避."""
        policy = BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=100)
        assert policy.get_delay(0) == pytest.approx(0.1)
        assert policy.get_delay(1) == pytest.approx(0.2)
        assert policy.get_delay(3) == pytest.approx(0.8)


class TestFailFastFailureHandler:
    """FailFastFailureHandler 测试."""

    def test_transport_failure_is_fatal(self) -> None:
        """测试传输层失败导致致命异常."""
        attempt = FlushAttempt(operations=_ops(2))
        failure = TransportFailure("connection refused", attempt.operations)
        attempt.error = failure

        resolution = FailFastFailureHandler().on_failure(attempt, failure)

        assert resolution.type == ResolutionType.FAIL
        assert isinstance(resolution.error, EngineFailure)
        assert resolution.error.__cause__ is failure

    def test_single_item_failure_is_fatal(self) -> None:
        """测试单条操作失败也导致致命异常."""
        attempt = FlushAttempt(operations=_ops(3))
        failure = _partial(attempt, {1}, status=400)

        resolution = FailFastFailureHandler().on_failure(attempt, failure)

        assert resolution.type == ResolutionType.FAIL
        assert "rejected" in str(resolution.error)


class TestIgnoreFailureHandler:
    """IgnoreFailureHandler 测试."""

    def test_failure_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        """测试失败被记录日志后忽略."""
        attempt = FlushAttempt(operations=_ops(2))
        failure = _partial(attempt, {0})

        with caplog.at_level("WARNING"):
            resolution = IgnoreFailureHandler().on_failure(attempt, failure)

        assert resolution.type == ResolutionType.IGNORE
        assert "忽略批量请求失败" in caplog.text


class TestRetryFailureHandler:
    """RetryFailureHandler 测试."""

    def test_partial_failure_retries_only_failed_operations(self) -> None:
        """测试部分失败只重试失败的操作."""
        attempt = FlushAttempt(operations=_ops(5))
        failure = _partial(attempt, {1, 3})
        handler = RetryFailureHandler(
            max_retries=3, backoff=BackoffPolicy(BackoffType.CONSTANT, delay_ms=10)
        )

        resolution = handler.on_failure(attempt, failure)

        assert resolution.type == ResolutionType.RETRY
        assert resolution.retry_operations == [
            attempt.operations[1],
            attempt.operations[3],
        ]
        assert resolution.delay == pytest.approx(0.01)

    def test_transport_failure_retries_all_operations(self) -> None:
        """测试整体失败重试全部操作."""
        attempt = FlushAttempt(operations=_ops(3))
        failure = TransportFailure("timeout", attempt.operations)

        resolution = RetryFailureHandler().on_failure(attempt, failure)

        assert resolution.type == ResolutionType.RETRY
        assert resolution.retry_operations == attempt.operations

    def test_retries_exhausted(self) -> None:
        """测试重试次数耗尽后降级为快速失败."""
        attempt = FlushAttempt(operations=_ops(2), retry_count=2)
        failure = _partial(attempt, {0})

        resolution = RetryFailureHandler(max_retries=2).on_failure(attempt, failure)

        assert resolution.type == ResolutionType.FAIL
        assert isinstance(resolution.error, BulkRetryExhaustedError)
        assert isinstance(resolution.error, EngineFailure)

    def test_non_retryable_status_is_fatal(self) -> None:
        """测试状态码不在允许列表中时直接失败."""
        attempt = FlushAttempt(operations=_ops(2))
        failure = _partial(attempt, {0}, status=400)
        handler = RetryFailureHandler(retry_statuses=frozenset({429}))

        resolution = handler.on_failure(attempt, failure)

        assert resolution.type == ResolutionType.FAIL
        assert not isinstance(resolution.error, BulkRetryExhaustedError)

    def test_retryable_status_is_retried(self) -> None:
        """测试允许列表中的状态码被重试."""
        attempt = FlushAttempt(operations=_ops(2))
        failure = _partial(attempt, {0}, status=429)
        handler = RetryFailureHandler(retry_statuses=frozenset({429}))

        assert handler.on_failure(attempt, failure).type == ResolutionType.RETRY


class TestCreateFailureHandler:
    """create_failure_handler 工厂函数测试."""

    @pytest.mark.parametrize(
        "policy, expected",
        [
            (FailureHandlingPolicy.FAIL_FAST, FailFastFailureHandler),
            (FailureHandlingPolicy.IGNORE, IgnoreFailureHandler),
            (FailureHandlingPolicy.RETRY, RetryFailureHandler),
        ],
    )
    def test_policy_mapping(self, policy, expected) -> None:
        """测试策略到处理器的映射."""
        assert isinstance(create_failure_handler(policy), expected)

    def test_retry_options_are_passed(self) -> None:
        """测试重试参数传递给处理器."""
        backoff = BackoffPolicy(BackoffType.CONSTANT, 5)
        handler = create_failure_handler(
            FailureHandlingPolicy.RETRY,
            max_retries=7,
            backoff=backoff,
            retry_statuses=frozenset({429}),
        )
        assert isinstance(handler, RetryFailureHandler)
        assert handler.max_retries == 7
        assert handler.backoff is backoff
        assert handler.retry_statuses == frozenset({429})
