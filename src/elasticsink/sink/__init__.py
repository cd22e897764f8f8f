"""Elasticsearch Sink 模块 - 流处理流水线与 ES 集群之间的批量写入 Sink.

主要组件:
    - ElasticsearchSink: Sink 生命周期（open / invoke / snapshot_state / close）
    - SinkConfig: 批量刷新与失败处理配置
    - SinkState: 生命周期状态枚举
    - SinkFunction / RequestIndexer / IndexRequestBuilder: 记录转换接口

使用示例:
    from elasticsink.sink import ElasticsearchSink, SinkConfig

    sink = ElasticsearchSink(["http://localhost:9200"], convert, SinkConfig())
    sink.open()
"""

from .functions import IndexRequestBuilder, RequestIndexer, SinkFunction, as_converter
from .models import SinkConfig, SinkState
from .tool import ElasticsearchSink

__all__ = [
    "ElasticsearchSink",
    "SinkConfig",
    "SinkState",
    "SinkFunction",
    "RequestIndexer",
    "IndexRequestBuilder",
    "as_converter",
]
