"""Elasticsearch Sink 核心工具类.

连接流处理流水线与 Elasticsearch 集群：把每条记录转换为批量操作，经 BulkProcessor
缓冲、刷新并处理失败，在检查点时等待所有请求被确认。

使用示例:
    from elasticsink import ElasticsearchSink, SinkConfig, BulkAction, BulkOperation

    def convert(record):
        return [BulkOperation(BulkAction.INDEX, "events", record["id"], record)]

    with ElasticsearchSink(["http://localhost:9200"], convert,
                           SinkConfig(max_bulk_actions=500)) as sink:
        for record in stream:
            sink.invoke(record)
        sink.snapshot_state()
"""

from __future__ import annotations

import logging
from typing import Any

from ..bulk.exceptions import BulkValidationError, EngineFailure
from ..bulk.failure import FailureHandler
from ..bulk.models import BulkOperation, ProcessorStats
from ..bulk.processor import BulkProcessor
from ..client.base import BulkClient
from ..client.transport import ElasticsearchBulkClient
from ..connection.models import ClusterConfig, ConnectionConfig
from ..exceptions import SinkStateError
from ..typing import RecordConverter, UserConfigDict
from .functions import IndexRequestBuilder, SinkFunction, as_converter
from .models import SinkConfig, SinkState

logger = logging.getLogger(__name__)


class ElasticsearchSink:
    """Elasticsearch 批量写入 Sink.

    生命周期: open() -> invoke(record)* / snapshot_state()* -> close()

    Args:
        hosts: ES 节点地址列表，构造时校验，None 或空列表直接失败
        converter: 记录转换逻辑，可以是普通函数、SinkFunction 或 IndexRequestBuilder
        config: SinkConfig 或字符串键值的用户配置字典，默认使用 SinkConfig 的默认值
        cluster: 完整的集群配置（含认证），提供时优先于 hosts
        connection_config: 连接池配置
        client: 自定义的批量写入后端，默认创建 ElasticsearchBulkClient
        failure_handler: 自定义失败处理器，提供时优先于配置中的失败处理策略

    Raises:
        ConfigurationError: 当地址列表、阈值或转换函数不合法时抛出
    """

    def __init__(
        self,
        hosts: list[str] | None,
        converter: SinkFunction[Any] | IndexRequestBuilder[Any] | RecordConverter,
        config: SinkConfig | UserConfigDict | None = None,
        *,
        cluster: ClusterConfig | None = None,
        connection_config: ConnectionConfig | None = None,
        client: BulkClient | None = None,
        failure_handler: FailureHandler | None = None,
    ) -> None:
        if isinstance(config, SinkConfig):
            self._config = config
        else:
            self._config = SinkConfig.from_user_config(config)

        if cluster is not None:
            hosts = cluster.hosts

        if client is None:
            cluster = cluster or ClusterConfig(hosts=hosts)
            connection_config = connection_config or ConnectionConfig(
                extra=dict(self._config.extra)
            )
            client = ElasticsearchBulkClient(
                cluster,
                connection_config,
                max_workers=self._config.max_concurrent_requests,
            )
        else:
            client.validate_endpoints(hosts)

        self._hosts = list(hosts or [])
        self._client = client
        self._converter = as_converter(converter)
        self._failure_handler = failure_handler or self._config.create_failure_handler()
        self._processor: BulkProcessor | None = None
        self._state = SinkState.CREATED

    # ============================================================
    # 状态查询
    # ============================================================

    @property
    def config(self) -> SinkConfig:
        """Sink 配置."""
        return self._config

    @property
    def state(self) -> SinkState:
        """当前生命周期状态，出现致命异常后为 FAILED."""
        if (
            self._state in (SinkState.ACTIVE, SinkState.DRAINING)
            and self._processor is not None
            and self._processor.failure is not None
        ):
            self._state = SinkState.FAILED
        return self._state

    @property
    def in_flight(self) -> int:
        """当前在途的批量请求数."""
        return self._processor.in_flight if self._processor else 0

    @property
    def buffered(self) -> int:
        """当前缓冲区中的操作数."""
        return self._processor.buffered if self._processor else 0

    @property
    def stats(self) -> ProcessorStats:
        """批量处理统计数据."""
        return self._processor.stats if self._processor else ProcessorStats()

    # ============================================================
    # 生命周期
    # ============================================================

    def open(self) -> None:
        """连接后端并启动批量处理器.

        Raises:
            SinkStateError: 重复 open 或 close 之后 open 时抛出
            ClusterUnreachableError: 集群不可达时抛出
        """
        if self._state != SinkState.CREATED:
            raise SinkStateError(f"Sink 当前状态为 {self._state.value}，无法 open")

        self._client.open()
        self._processor = BulkProcessor(
            self._client,
            trigger_policy=self._config.trigger_policy(),
            flush_interval_ms=self._config.max_flush_interval_ms,
            max_concurrent_requests=self._config.max_concurrent_requests,
            failure_handler=self._failure_handler,
        )
        self._state = SinkState.ACTIVE

        if not self._config.flush_on_checkpoint:
            logger.warning(
                "已关闭检查点刷新，Sink 只能提供至多一次（at-most-once）投递保证"
            )
        logger.info(f"Elasticsearch Sink 已打开: hosts={self._hosts}")

    def invoke(self, record: Any) -> None:
        """接收一条记录，转换后写入缓冲区.

        Args:
            record: 流记录

        Raises:
            EngineFailure: Sink 已进入致命状态时抛出已记录的异常
            BulkValidationError: 转换函数返回了非 BulkOperation 对象时抛出
            SinkStateError: 未 open 或已 close 时抛出
        """
        processor = self._ensure_usable()
        operations = self._converter(record) or []
        try:
            for operation in operations:
                if not isinstance(operation, BulkOperation):
                    raise BulkValidationError(
                        f"转换函数必须返回 BulkOperation，实际为: "
                        f"{type(operation).__name__}"
                    )
                processor.add(operation)
        except EngineFailure:
            self._state = SinkState.FAILED
            raise

    def snapshot_state(self) -> None:
        """检查点：刷新缓冲区并等待所有在途请求被确认.

        返回 None 作为空的恢复状态，所有已接收的记录在返回前都已被 ES 确认。

        Raises:
            EngineFailure: 排空前或排空过程中进入致命状态时抛出
        """
        processor = self._ensure_usable()
        if not self._config.flush_on_checkpoint:
            return None

        self._state = SinkState.DRAINING
        try:
            processor.drain()
        except EngineFailure:
            self._state = SinkState.FAILED
            raise
        self._state = SinkState.ACTIVE
        return None

    def close(self) -> None:
        """执行最后一次刷新，等待在途请求后释放后端资源.

        等待超时只记录日志；已记录的致命异常会在释放资源后重新抛出。
        """
        if self._state == SinkState.CLOSED:
            return
        try:
            if self._processor is not None:
                self._processor.close(self._config.shutdown_timeout)
        finally:
            self._client.close()
            self._state = SinkState.CLOSED
            logger.info("Elasticsearch Sink 已关闭")

    def _ensure_usable(self) -> BulkProcessor:
        """检查当前状态是否允许写入或检查点."""
        state = self.state
        if state == SinkState.FAILED:
            assert self._processor is not None
            self._processor.check_failure()
        if state == SinkState.CREATED or self._processor is None:
            raise SinkStateError("Sink 尚未 open")
        if state == SinkState.CLOSED:
            raise SinkStateError("Sink 已关闭")
        return self._processor

    def __enter__(self) -> ElasticsearchSink:
        """上下文管理器入口，自动 open."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """上下文管理器退出，自动 close."""
        self.close()
