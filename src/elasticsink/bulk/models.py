"""批量操作数据模型定义模块."""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import BulkValidationError

_attempt_ids = itertools.count(1)


class BulkAction(Enum):
    """批量操作类型枚举."""

    INDEX = "index"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"


@dataclass(frozen=True)
class BulkOperation:
    """批量操作项数据类.

    创建后不可变，由 BulkBuffer 独占持有，直到被某次刷新快照接管。

    Attributes:
        action: 操作类型
        index_name: 索引名称
        doc_id: 文档ID（INDEX/CREATE 可选，UPDATE/UPSERT/DELETE 必需）
        source: 文档源数据（INDEX、CREATE、UPDATE、UPSERT 使用）
        routing: 路由信息（可选）
        retry_on_conflict: 冲突重试次数（用于UPDATE操作）
        metadata: 额外的元数据，不会发送到 ES

    Raises:
        BulkValidationError: 当操作缺少必要字段时抛出
    """

    action: BulkAction
    index_name: str
    doc_id: str | None = None
    source: dict[str, Any] | None = None
    routing: str | None = None
    retry_on_conflict: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        """校验操作参数合法性."""
        if not self.index_name:
            raise BulkValidationError("index_name 不能为空")
        if self.action in (BulkAction.INDEX, BulkAction.CREATE):
            if self.source is None:
                raise BulkValidationError(
                    f"操作类型 {self.action.value} 需要提供 source 数据"
                )
        elif self.doc_id is None:
            raise BulkValidationError(f"操作类型 {self.action.value} 需要提供 doc_id")


@dataclass
class BulkItemResult:
    """单条操作的执行结果.

    与提交的操作按位置一一对应。

    Attributes:
        operation: 对应的批量操作
        status: HTTP状态码
        ok: 是否成功
        result: 成功时 ES 返回的结果（created、updated、deleted、noop 等）
        error_type: 错误类型
        error_reason: 错误原因
        caused_by: 根本原因
    """

    operation: BulkOperation
    status: int
    ok: bool = True
    result: str | None = None
    error_type: str | None = None
    error_reason: str | None = None
    caused_by: str | None = None


class FlushOutcome(Enum):
    """刷新请求完成状态枚举."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


@dataclass
class FlushAttempt:
    """一次正在执行的批量请求.

    Attributes:
        operations: 本次请求携带的操作快照（保持入队顺序）
        retry_count: 第几次重试，首次提交为 0
        attempt_id: 请求编号，仅用于日志
        started_at: 提交时间（time.monotonic），重试请求在退避结束、真正提交时重新记录
        outcome: 完成状态
        item_results: 逐条操作结果
        error: 传输层失败时的异常
    """

    operations: list[BulkOperation]
    retry_count: int = 0
    attempt_id: int = field(default_factory=lambda: next(_attempt_ids))
    started_at: float = field(default_factory=time.monotonic)
    outcome: FlushOutcome = FlushOutcome.PENDING
    item_results: list[BulkItemResult] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def size(self) -> int:
        """本次请求的操作数."""
        return len(self.operations)

    @property
    def failed_items(self) -> list[BulkItemResult]:
        """失败的逐条结果."""
        return [item for item in self.item_results if not item.ok]

    def elapsed(self) -> float:
        """自开始以来经过的秒数."""
        return time.monotonic() - self.started_at

    def get_error_summary(self) -> str:
        """获取错误摘要."""
        if self.error is not None:
            return f"Transport error: {self.error}"
        failed = self.failed_items
        if not failed:
            return "No errors"
        summary = f"Total errors: {len(failed)}\n"
        for i, item in enumerate(failed[:10], 1):  # 只显示前10个错误
            summary += (
                f"{i}. [{item.operation.action.value}] "
                f"Index: {item.operation.index_name}, "
                f"DocID: {item.operation.doc_id}, "
                f"Status: {item.status}, Reason: {item.error_reason}\n"
            )
        if len(failed) > 10:
            summary += f"... and {len(failed) - 10} more errors\n"
        return summary


@dataclass
class ProcessorStats:
    """批量处理器统计数据类.

    Attributes:
        flushes_started: 已提交的批量请求数（含重试）
        flushes_succeeded: 全部成功的请求数
        flushes_partially_failed: 部分失败的请求数
        flushes_failed: 传输层失败的请求数
        operations_submitted: 已提交的操作数（含重试）
        operations_succeeded: 成功的操作数
        operations_failed: 失败的操作数
        operations_retried: 重新提交的操作数
        operations_ignored: 失败后被忽略的操作数
    """

    flushes_started: int = 0
    flushes_succeeded: int = 0
    flushes_partially_failed: int = 0
    flushes_failed: int = 0
    operations_submitted: int = 0
    operations_succeeded: int = 0
    operations_failed: int = 0
    operations_retried: int = 0
    operations_ignored: int = 0
