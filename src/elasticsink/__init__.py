"""Elastic Sink - 面向流处理流水线的 Elasticsearch 批量写入 Sink.

把流记录转换为批量操作，按数量、字节数或时间刷新为 bulk 请求，
异步执行并处理部分失败，同时配合流水线的检查点协议，保证检查点完成时
没有未刷新或未确认的请求。

主要功能:
    - ElasticsearchSink: open / invoke / snapshot_state / close
    - BulkProcessor: 缓冲、刷新触发、背压、失败处理与排空
    - FailureHandler: 快速失败、忽略、重试三种失败处理策略

使用示例:
    from elasticsink import BulkAction, BulkOperation, ElasticsearchSink

    def convert(record):
        return [BulkOperation(BulkAction.INDEX, "events", record["id"], record)]

    sink = ElasticsearchSink(["http://localhost:9200"], convert)
    sink.open()
    sink.invoke({"id": "1", "message": "hello"})
    sink.snapshot_state()
    sink.close()
"""

__version__ = "0.1.0"

# 导出批量引擎
from elasticsink.bulk import (
    BackoffPolicy,
    BackoffType,
    BulkAction,
    BulkOperation,
    BulkProcessor,
    FailureHandler,
    FailureHandlingPolicy,
)

# 导出后端客户端
from elasticsink.client import BulkClient, ElasticsearchBulkClient

# 导出连接配置
from elasticsink.connection import ClusterConfig, ConnectionConfig

# 导出异常
from elasticsink.bulk.exceptions import (
    BulkRetryExhaustedError,
    EngineFailure,
    PartialOperationFailure,
    TransportFailure,
)
from elasticsink.exceptions import ConfigurationError, ElasticSinkError, SinkStateError

# 导出 Sink
from elasticsink.sink import (
    ElasticsearchSink,
    IndexRequestBuilder,
    RequestIndexer,
    SinkConfig,
    SinkFunction,
    SinkState,
)

__all__ = [
    # 版本
    "__version__",
    # Sink
    "ElasticsearchSink",
    "SinkConfig",
    "SinkState",
    "SinkFunction",
    "RequestIndexer",
    "IndexRequestBuilder",
    # 批量引擎
    "BulkAction",
    "BulkOperation",
    "BulkProcessor",
    "FailureHandler",
    "FailureHandlingPolicy",
    "BackoffPolicy",
    "BackoffType",
    # 后端
    "BulkClient",
    "ElasticsearchBulkClient",
    "ClusterConfig",
    "ConnectionConfig",
    # 异常
    "ElasticSinkError",
    "ConfigurationError",
    "SinkStateError",
    "EngineFailure",
    "BulkRetryExhaustedError",
    "TransportFailure",
    "PartialOperationFailure",
]
