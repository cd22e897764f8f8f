"""批量写入后端客户端接口定义模块."""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future

from ..bulk.models import BulkItemResult, BulkOperation


class BulkClient(ABC):
    """批量写入后端客户端抽象基类.

    BulkProcessor 只依赖该接口，不感知具体的后端实现。
    """

    @abstractmethod
    def validate_endpoints(self, hosts: list[str] | None) -> None:
        """校验节点地址列表.

        Args:
            hosts: 节点地址列表

        Raises:
            ConnectionConfigError: 当地址列表为 None、为空或格式不合法时抛出
        """

    @abstractmethod
    def submit_bulk(
        self, operations: list[BulkOperation]
    ) -> Future[list[BulkItemResult]]:
        """异步提交一个批量请求，不阻塞调用方.

        Args:
            operations: 按入队顺序排列的操作

        Returns:
            Future，成功时结果为与 operations 按位置对应的逐条结果，
            整体失败时以 TransportFailure 结束
        """

    def open(self) -> None:
        """建立与后端的连接，默认无需操作."""

    def close(self) -> None:
        """释放后端资源，默认无需操作."""
