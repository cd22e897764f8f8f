"""Elasticsearch Sink 使用示例.

本文件展示了如何用 ElasticsearchSink 把流记录批量写入 Elasticsearch，
以及如何配置刷新阈值、失败处理策略和检查点。
"""

import logging

from elasticsink import (
    BulkAction,
    BulkOperation,
    ElasticsearchSink,
    EngineFailure,
    SinkConfig,
)
from elasticsink.sink import RequestIndexer, SinkFunction

logging.basicConfig(level=logging.INFO)

HOSTS = ["http://localhost:9200"]

# 模拟的流数据
EVENTS = [
    {"id": "1", "user": "张三", "action": "login"},
    {"id": "2", "user": "李四", "action": "purchase"},
    {"id": "3", "user": "王五", "action": "logout"},
]


# ==================== 示例1：普通转换函数 ====================
def example_simple_converter():
    """每条记录写入一条 INDEX 操作."""

    def convert(record):
        return [BulkOperation(BulkAction.INDEX, "events", record["id"], record)]

    config = SinkConfig(max_bulk_actions=500, max_flush_interval_ms=1000)

    with ElasticsearchSink(HOSTS, convert, config) as sink:
        for record in EVENTS:
            sink.invoke(record)
        # 检查点：返回时所有记录都已被 ES 确认
        sink.snapshot_state()
        print(f"写入统计: {sink.stats}")


# ==================== 示例2：SinkFunction ====================
class AuditSinkFunction(SinkFunction[dict]):
    """把事件写入业务索引，同时更新用户最近一次行为."""

    def process(self, element, indexer: RequestIndexer) -> None:
        indexer.add(
            BulkOperation(BulkAction.INDEX, "events", element["id"], element),
            BulkOperation(
                BulkAction.UPSERT,
                "user-last-action",
                element["user"],
                {"user": element["user"], "action": element["action"]},
            ),
        )


def example_sink_function():
    """使用 SinkFunction 每条记录产生多条操作."""
    with ElasticsearchSink(HOSTS, AuditSinkFunction()) as sink:
        for record in EVENTS:
            sink.invoke(record)
        sink.snapshot_state()


# ==================== 示例3：用户配置字典与重试 ====================
def example_retry_with_user_config():
    """使用字符串键值配置开启重试."""

    def convert(record):
        return [BulkOperation(BulkAction.INDEX, "events", record["id"], record)]

    user_config = {
        "bulk.flush.max.actions": "1000",
        "bulk.flush.max.size": "5mb",
        "bulk.flush.interval.ms": "1s",
        "bulk.flush.max.concurrent.requests": "2",
        "bulk.flush.backoff.enable": "true",
        "bulk.flush.backoff.type": "exponential",
        "bulk.flush.backoff.retries": "5",
        "bulk.flush.backoff.delay": "100ms",
        "bulk.flush.retry.statuses": "429,503",
    }

    sink = ElasticsearchSink(HOSTS, convert, user_config)
    sink.open()
    try:
        for record in EVENTS:
            sink.invoke(record)
        sink.snapshot_state()
    except EngineFailure as e:
        print(f"写入失败，需要从上一个检查点恢复: {e}")
    finally:
        sink.close()


if __name__ == "__main__":
    example_simple_converter()
    example_sink_function()
    example_retry_with_user_config()
