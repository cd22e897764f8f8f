"""批量操作异常定义模块."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import ElasticSinkError

if TYPE_CHECKING:
    from .models import BulkItemResult, BulkOperation


class BulkOperationError(ElasticSinkError):
    """批量操作基础异常类."""

    pass


class BulkValidationError(BulkOperationError):
    """批量操作验证异常."""

    pass


class TransportFailure(BulkOperationError):
    """整个批量请求未能送达后端（网络或集群级别错误）.

    Attributes:
        operations: 该批量请求携带的全部操作
    """

    def __init__(
        self, message: str, operations: list[BulkOperation] | None = None
    ) -> None:
        super().__init__(message)
        self.operations: list[BulkOperation] = list(operations or [])


class PartialOperationFailure(BulkOperationError):
    """批量请求已送达，但其中部分操作执行失败.

    Attributes:
        failed_items: 失败的单条操作结果列表
    """

    def __init__(self, message: str, failed_items: list[BulkItemResult]) -> None:
        super().__init__(message)
        self.failed_items = failed_items


class EngineFailure(BulkOperationError):
    """致命异常.

    一旦出现，后续所有写入与检查点调用都会重新抛出同一个异常对象，
    唯一的恢复方式是由宿主流水线重启整个 Sink。
    """

    pass


class BulkRetryExhaustedError(EngineFailure):
    """批量操作重试次数耗尽异常."""

    pass
