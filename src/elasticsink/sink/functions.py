"""记录转换接口模块.

Sink 只依赖单一的转换契约 ``convert(record) -> Iterable[BulkOperation]``。
为兼容不同写法，提供两种可适配到该契约的接口：
- SinkFunction: 每条记录通过 RequestIndexer 添加任意数量的操作
- IndexRequestBuilder: 每条记录生成一条 INDEX 操作（已废弃）

两者经 as_converter 适配后的缓冲与刷新行为完全一致。
"""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from ..bulk.models import BulkOperation
from ..exceptions import ConfigurationError
from ..typing import RecordConverter

T = TypeVar("T")


class RequestIndexer:
    """收集单条记录转换出的操作."""

    def __init__(self) -> None:
        self._operations: list[BulkOperation] = []

    def add(self, *operations: BulkOperation) -> None:
        """添加一条或多条操作."""
        self._operations.extend(operations)

    def drain(self) -> list[BulkOperation]:
        """取走已添加的操作."""
        operations = self._operations
        self._operations = []
        return operations


class SinkFunction(ABC, Generic[T]):
    """记录处理函数抽象基类.

    Examples:
        >>> class UserSinkFunction(SinkFunction[dict]):
        ...     def process(self, element, indexer):
        ...         indexer.add(
        ...             BulkOperation(BulkAction.INDEX, "users", element["id"], element)
        ...         )
    """

    @abstractmethod
    def process(self, element: T, indexer: RequestIndexer) -> None:
        """处理一条记录，把生成的操作添加到 indexer.

        不能阻塞，也不能持有 indexer 的引用。
        """


class IndexRequestBuilder(ABC, Generic[T]):
    """每条记录生成一条操作的构建器.

    已废弃，请改用 SinkFunction。
    """

    @abstractmethod
    def create_index_request(self, element: T) -> BulkOperation:
        """根据记录创建一条操作."""


def as_converter(
    function: SinkFunction[Any] | IndexRequestBuilder[Any] | RecordConverter,
) -> RecordConverter:
    """将 SinkFunction、IndexRequestBuilder 或普通可调用对象适配为转换函数.

    Args:
        function: 用户提供的转换逻辑

    Returns:
        ``convert(record) -> list[BulkOperation]`` 形式的转换函数

    Raises:
        ConfigurationError: 当 function 为 None 或不可调用时抛出
    """
    if function is None:
        raise ConfigurationError("转换函数不能为 None")

    if isinstance(function, SinkFunction):
        sink_function = function

        def convert(record: Any) -> list[BulkOperation]:
            indexer = RequestIndexer()
            sink_function.process(record, indexer)
            return indexer.drain()

        return convert

    if isinstance(function, IndexRequestBuilder):
        warnings.warn(
            "IndexRequestBuilder 已废弃，请改用 SinkFunction",
            DeprecationWarning,
            stacklevel=2,
        )
        builder = function

        def convert_with_builder(record: Any) -> list[BulkOperation]:
            return [builder.create_index_request(record)]

        return convert_with_builder

    if callable(function):
        return function

    raise ConfigurationError(f"不支持的转换函数类型: {type(function).__name__}")
