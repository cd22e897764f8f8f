"""基于官方 elasticsearch 客户端的批量写入后端实现."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from elasticsearch.exceptions import ApiError, TransportError

from ..bulk.exceptions import TransportFailure
from ..bulk.models import BulkItemResult, BulkOperation
from ..bulk.utils import parse_bulk_response, serialize_operation
from ..connection.models import ClusterConfig, ConnectionConfig, validate_hosts
from ..connection.tool import ESClientFactory
from .base import BulkClient

logger = logging.getLogger(__name__)


class ElasticsearchBulkClient(BulkClient):
    """Elasticsearch 批量写入客户端.

    在线程池中执行同步的 bulk API 调用，使提交方不被阻塞。

    Args:
        cluster: 集群配置
        connection_config: 连接池配置
        max_workers: 线程池大小，默认与最大在途请求数一致
        check_connection: open 时是否 ping 集群
    """

    def __init__(
        self,
        cluster: ClusterConfig,
        connection_config: ConnectionConfig | None = None,
        max_workers: int = 1,
        check_connection: bool = True,
    ) -> None:
        self.validate_endpoints(cluster.hosts)
        self._factory = ESClientFactory(cluster, connection_config)
        self._max_workers = max_workers
        self._check_connection = check_connection
        self._executor: ThreadPoolExecutor | None = None

    def validate_endpoints(self, hosts: list[str] | None) -> None:
        validate_hosts(hosts)

    def open(self) -> None:
        """创建客户端和线程池，并按需检查集群可达性.

        Raises:
            ClusterUnreachableError: 当集群不可达时抛出
        """
        self._factory.get_client()
        if self._check_connection:
            self._factory.check_reachable()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="elasticsink-bulk"
        )
        logger.info(
            f"批量写入客户端已打开: hosts={self._factory.cluster.hosts}, "
            f"max_workers={self._max_workers}"
        )

    def submit_bulk(
        self, operations: list[BulkOperation]
    ) -> Future[list[BulkItemResult]]:
        if self._executor is None:
            raise TransportFailure("批量写入客户端尚未打开", operations)
        return self._executor.submit(self._execute_bulk, operations)

    def _execute_bulk(self, operations: list[BulkOperation]) -> list[BulkItemResult]:
        """执行一次 bulk API 调用并解析逐条结果."""
        body = [line for op in operations for line in serialize_operation(op)]
        try:
            response = self._factory.get_client().bulk(operations=body)
        except (ApiError, TransportError) as e:
            raise TransportFailure(f"bulk 请求失败: {e}", operations) from e
        return parse_bulk_response(operations, response.body)

    def close(self) -> None:
        """关闭线程池和客户端连接.

        不等待仍在执行的 bulk 请求，等待时长由调用方（BulkProcessor.close）控制；
        尚未开始的请求被取消。
        """
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._factory.close()
        logger.info("批量写入客户端已关闭")
