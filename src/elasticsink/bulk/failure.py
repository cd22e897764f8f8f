"""批量请求失败处理策略模块.

决定一次失败或部分失败的批量请求的去向：
- FailFastFailureHandler: 任何失败都进入致命状态
- IgnoreFailureHandler: 记录日志后继续写入
- RetryFailureHandler: 将失败的操作按退避策略重新提交，重试耗尽后进入致命状态

策略在构造时选定，整个 Sink 生命周期内不可切换。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import (
    BulkRetryExhaustedError,
    EngineFailure,
    PartialOperationFailure,
    TransportFailure,
)
from .models import BulkOperation, FlushAttempt

logger = logging.getLogger(__name__)

BulkFailure = TransportFailure | PartialOperationFailure


class FailureHandlingPolicy(Enum):
    """失败处理策略枚举."""

    FAIL_FAST = "fail-fast"
    IGNORE = "ignore"
    RETRY = "retry"


class BackoffType(Enum):
    """重试退避类型枚举."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class ResolutionType(Enum):
    """失败处理结果类型枚举."""

    IGNORE = "ignore"
    RETRY = "retry"
    FAIL = "fail"


@dataclass
class FailureResolution:
    """失败处理结果.

    Attributes:
        type: 处理结果类型
        retry_operations: 需要重新提交的操作（仅 RETRY）
        delay: 重新提交前的等待时间（秒，仅 RETRY）
        error: 致命异常（仅 FAIL）
    """

    type: ResolutionType
    retry_operations: list[BulkOperation] = field(default_factory=list)
    delay: float = 0.0
    error: EngineFailure | None = None

    @classmethod
    def ignore(cls) -> FailureResolution:
        return cls(type=ResolutionType.IGNORE)

    @classmethod
    def retry(
        cls, operations: list[BulkOperation], delay: float = 0.0
    ) -> FailureResolution:
        return cls(type=ResolutionType.RETRY, retry_operations=operations, delay=delay)

    @classmethod
    def fail(cls, error: EngineFailure) -> FailureResolution:
        return cls(type=ResolutionType.FAIL, error=error)


def _engine_failure(
    attempt: FlushAttempt,
    failure: BulkFailure,
    error_cls: type[EngineFailure] = EngineFailure,
    prefix: str = "批量请求失败",
) -> EngineFailure:
    """构造以原始失败为根因的致命异常."""
    error = error_cls(
        f"{prefix} (attempt={attempt.attempt_id}, operations={attempt.size}): "
        f"{attempt.get_error_summary()}"
    )
    error.__cause__ = failure
    return error


class FailureHandler(ABC):
    """失败处理器抽象基类."""

    @abstractmethod
    def on_failure(
        self, attempt: FlushAttempt, failure: BulkFailure
    ) -> FailureResolution:
        """处理一次失败或部分失败的批量请求.

        Args:
            attempt: 已完成的批量请求，item_results/error 已填充
            failure: TransportFailure（整体失败）或 PartialOperationFailure（部分失败）

        Returns:
            处理结果
        """


class FailFastFailureHandler(FailureHandler):
    """任何失败都立即进入致命状态."""

    def on_failure(
        self, attempt: FlushAttempt, failure: BulkFailure
    ) -> FailureResolution:
        return FailureResolution.fail(_engine_failure(attempt, failure))


class IgnoreFailureHandler(FailureHandler):
    """记录失败后继续写入，仅提供尽力而为的投递保证."""

    def on_failure(
        self, attempt: FlushAttempt, failure: BulkFailure
    ) -> FailureResolution:
        logger.warning(
            f"忽略批量请求失败 (attempt={attempt.attempt_id}): "
            f"{attempt.get_error_summary()}"
        )
        return FailureResolution.ignore()


@dataclass(frozen=True)
class BackoffPolicy:
    """重试退避策略.

    Attributes:
        type: 退避类型
        delay_ms: 初始等待时间（毫秒）
    """

    type: BackoffType = BackoffType.EXPONENTIAL
    delay_ms: int = 50

    def get_delay(self, retry_count: int) -> float:
        """计算第 retry_count 次重试前的等待秒数（retry_count 从 0 开始）."""
        if self.type == BackoffType.CONSTANT:
            return self.delay_ms / 1000
        return self.delay_ms * (2**retry_count) / 1000


class RetryFailureHandler(FailureHandler):
    """将失败的操作重新提交为新的批量请求.

    整体失败时重试全部操作，部分失败时只重试失败的操作。
    重试次数耗尽，或失败状态码不在 retry_statuses 中时，降级为快速失败。

    Args:
        max_retries: 最大重试次数
        backoff: 退避策略
        retry_statuses: 允许重试的 HTTP 状态码集合，None 表示全部允许
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff: BackoffPolicy | None = None,
        retry_statuses: frozenset[int] | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.backoff = backoff or BackoffPolicy()
        self.retry_statuses = retry_statuses

    def on_failure(
        self, attempt: FlushAttempt, failure: BulkFailure
    ) -> FailureResolution:
        if isinstance(failure, PartialOperationFailure):
            failed_items = failure.failed_items
            if self.retry_statuses is not None:
                fatal = [
                    item
                    for item in failed_items
                    if item.status not in self.retry_statuses
                ]
                if fatal:
                    return FailureResolution.fail(
                        _engine_failure(
                            attempt, failure, prefix="批量请求存在不可重试的失败"
                        )
                    )
            operations = [item.operation for item in failed_items]
        else:
            operations = list(attempt.operations)

        if attempt.retry_count >= self.max_retries:
            logger.error(
                f"批量请求重试 {attempt.retry_count} 次后仍有 "
                f"{len(operations)} 个操作失败"
            )
            return FailureResolution.fail(
                _engine_failure(
                    attempt,
                    failure,
                    error_cls=BulkRetryExhaustedError,
                    prefix="批量操作重试次数耗尽",
                )
            )

        delay = self.backoff.get_delay(attempt.retry_count)
        logger.warning(
            f"批量请求 {attempt.attempt_id} 有 {len(operations)} 个操作失败，"
            f"{delay:.3f} 秒后第 {attempt.retry_count + 1} 次重试"
        )
        return FailureResolution.retry(operations, delay)


def create_failure_handler(
    policy: FailureHandlingPolicy,
    max_retries: int = 3,
    backoff: BackoffPolicy | None = None,
    retry_statuses: frozenset[int] | None = None,
) -> FailureHandler:
    """根据策略创建失败处理器.

    Args:
        policy: 失败处理策略
        max_retries: 最大重试次数（仅 RETRY）
        backoff: 退避策略（仅 RETRY）
        retry_statuses: 允许重试的状态码（仅 RETRY）

    Returns:
        失败处理器实例
    """
    if policy == FailureHandlingPolicy.FAIL_FAST:
        return FailFastFailureHandler()
    if policy == FailureHandlingPolicy.IGNORE:
        return IgnoreFailureHandler()
    return RetryFailureHandler(
        max_retries=max_retries, backoff=backoff, retry_statuses=retry_statuses
    )
