"""ElasticsearchSink 单元测试.

使用 FakeBulkClient 替代真实集群，覆盖地址校验、生命周期状态、
检查点排空与致命失败传播。
"""

import threading
import time
from unittest.mock import patch

import pytest

from elasticsink.bulk.exceptions import BulkValidationError, EngineFailure
from elasticsink.bulk.failure import IgnoreFailureHandler
from elasticsink.bulk.models import BulkAction, BulkOperation
from elasticsink.client.transport import ElasticsearchBulkClient
from elasticsink.connection.exceptions import ConnectionConfigError
from elasticsink.connection.models import ClusterConfig
from elasticsink.exceptions import ConfigurationError, SinkStateError
from elasticsink.sink.functions import IndexRequestBuilder
from elasticsink.sink.models import SinkConfig, SinkState
from elasticsink.sink.tool import ElasticsearchSink

HOSTS = ["http://localhost:9200"]


def convert(record: dict) -> list[BulkOperation]:
    return [BulkOperation(BulkAction.INDEX, "events", str(record["id"]), record)]


def _make_sink(client, config=None, **kwargs) -> ElasticsearchSink:
    return ElasticsearchSink(HOSTS, convert, config, client=client, **kwargs)


class TestElasticsearchSinkInit:
    """构造与地址校验测试."""

    def test_none_hosts_rejected(self) -> None:
        """测试地址列表为 None 时构造失败."""
        with pytest.raises(ConfigurationError, match="不能为 None"):
            ElasticsearchSink(None, convert)

    def test_empty_hosts_rejected(self) -> None:
        """测试地址列表为空时构造失败."""
        with pytest.raises(ConfigurationError, match="不能为空"):
            ElasticsearchSink([], convert)

    def test_invalid_host_rejected(self) -> None:
        """测试不合法的地址在构造时失败."""
        with pytest.raises(ConnectionConfigError, match="不合法的 ES 节点地址"):
            ElasticsearchSink(["localhost-no-scheme"], convert)

    def test_custom_client_validates_hosts(self, fake_client) -> None:
        """测试自定义后端同样校验地址."""
        with pytest.raises(ConfigurationError):
            ElasticsearchSink([], convert, client=fake_client)

    def test_none_converter_rejected(self, fake_client) -> None:
        """测试转换函数为 None 时构造失败."""
        with pytest.raises(ConfigurationError):
            ElasticsearchSink(HOSTS, None, client=fake_client)

    def test_user_config_dict(self, fake_client) -> None:
        """测试使用用户配置字典构造."""
        sink = _make_sink(fake_client, {"bulk.flush.max.actions": "1"})
        assert sink.config.max_bulk_actions == 1
        assert sink.state == SinkState.CREATED

    def test_invalid_user_config(self, fake_client) -> None:
        """测试不合法的配置在构造时失败."""
        with pytest.raises(ConfigurationError):
            _make_sink(fake_client, {"bulk.flush.max.concurrent.requests": "0"})

    def test_default_client_uses_extra_config(self) -> None:
        """测试默认后端为 ElasticsearchBulkClient，未识别的配置透传给客户端."""
        sink = ElasticsearchSink(HOSTS, convert, {"node_class": "requests"})
        assert isinstance(sink._client, ElasticsearchBulkClient)
        assert sink._client._factory._connection_config.extra == {
            "node_class": "requests"
        }

    def test_cluster_config_takes_precedence(self, fake_client) -> None:
        """测试提供集群配置时使用其地址."""
        cluster = ClusterConfig(hosts=["https://es.example.com:9243"], api_key="key")
        sink = ElasticsearchSink(None, convert, cluster=cluster, client=fake_client)
        assert sink._hosts == ["https://es.example.com:9243"]


class TestElasticsearchSinkLifecycle:
    """生命周期状态测试."""

    def test_open_activates(self, auto_client) -> None:
        """测试 open 后进入 ACTIVE 状态."""
        sink = _make_sink(auto_client)
        sink.open()
        assert auto_client.opened is True
        assert sink.state == SinkState.ACTIVE
        sink.close()

    def test_double_open_rejected(self, auto_client) -> None:
        """测试重复 open 抛出 SinkStateError."""
        sink = _make_sink(auto_client)
        sink.open()
        with pytest.raises(SinkStateError):
            sink.open()
        sink.close()

    def test_invoke_before_open(self, auto_client) -> None:
        """测试 open 之前写入抛出 SinkStateError."""
        sink = _make_sink(auto_client)
        with pytest.raises(SinkStateError, match="尚未 open"):
            sink.invoke({"id": 1})

    def test_invoke_after_close(self, auto_client) -> None:
        """测试 close 之后写入抛出 SinkStateError."""
        sink = _make_sink(auto_client)
        sink.open()
        sink.close()
        with pytest.raises(SinkStateError, match="已关闭"):
            sink.invoke({"id": 1})

    def test_close_flushes_and_releases_client(self, auto_client) -> None:
        """测试 close 执行最后一次刷新并关闭后端."""
        sink = _make_sink(auto_client)
        sink.open()
        sink.invoke({"id": 1})
        assert auto_client.submit_count == 0

        sink.close()

        assert auto_client.submit_count == 1
        assert auto_client.closed is True
        assert sink.state == SinkState.CLOSED

    def test_close_is_idempotent(self, auto_client) -> None:
        """测试重复 close 不会出错."""
        sink = _make_sink(auto_client)
        sink.open()
        sink.close()
        sink.close()
        assert sink.state == SinkState.CLOSED

    def test_close_without_open(self, auto_client) -> None:
        """测试未 open 直接 close 只释放后端."""
        sink = _make_sink(auto_client)
        sink.close()
        assert auto_client.closed is True

    def test_context_manager(self, auto_client) -> None:
        """测试上下文管理器自动 open 和 close."""
        with _make_sink(auto_client) as sink:
            assert sink.state == SinkState.ACTIVE
            sink.invoke({"id": 1})
        assert sink.state == SinkState.CLOSED
        assert auto_client.submit_count == 1


class TestElasticsearchSinkInvoke:
    """记录写入测试."""

    def test_flush_per_record(self, auto_client) -> None:
        """测试 max_actions=1 时每条记录一次请求，按顺序送达."""
        sink = _make_sink(auto_client, {"bulk.flush.max.actions": "1"})
        sink.open()
        for i in range(3):
            sink.invoke({"id": i})

        assert [[op.doc_id for op in batch] for batch in auto_client.submitted] == [
            ["0"],
            ["1"],
            ["2"],
        ]
        sink.close()

    def test_converter_may_return_nothing(self, auto_client) -> None:
        """测试转换函数返回 None 或空列表时不写入."""
        sink = ElasticsearchSink(HOSTS, lambda record: None, client=auto_client)
        sink.open()
        sink.invoke({"id": 1})
        assert sink.buffered == 0
        sink.close()

    def test_converter_returning_non_operation(self, auto_client) -> None:
        """测试转换函数返回非 BulkOperation 时抛出 BulkValidationError."""
        sink = ElasticsearchSink(
            HOSTS, lambda record: [{"id": 1}], client=auto_client
        )
        sink.open()
        with pytest.raises(BulkValidationError, match="BulkOperation"):
            sink.invoke({"id": 1})
        sink.close()

    def test_index_request_builder(self, auto_client) -> None:
        """测试废弃的 IndexRequestBuilder 与转换函数行为一致."""

        class Builder(IndexRequestBuilder[dict]):
            def create_index_request(self, element: dict) -> BulkOperation:
                return BulkOperation(
                    BulkAction.INDEX, "events", str(element["id"]), element
                )

        with pytest.warns(DeprecationWarning):
            sink = ElasticsearchSink(
                HOSTS,
                Builder(),
                {"bulk.flush.max.actions": "2"},
                client=auto_client,
            )
        sink.open()
        for i in range(4):
            sink.invoke({"id": i})
        assert auto_client.submit_count == 2
        sink.close()


class TestElasticsearchSinkCheckpoint:
    """检查点排空测试."""

    def test_snapshot_waits_for_acknowledgement(self, fake_client) -> None:
        """测试检查点返回前所有请求都已完成."""
        sink = _make_sink(fake_client, {"bulk.flush.max.concurrent.requests": "2"})
        sink.open()
        sink.invoke({"id": 1})
        sink.invoke({"id": 2})

        outcome: list = []

        def run_snapshot() -> None:
            outcome.append(sink.snapshot_state())

        thread = threading.Thread(target=run_snapshot, daemon=True)
        thread.start()
        assert fake_client.submit_event.wait(timeout=1.0)
        time.sleep(0.05)
        assert thread.is_alive()
        assert sink.state == SinkState.DRAINING

        fake_client.complete(0)
        thread.join(timeout=2.0)

        assert outcome == [None]
        assert sink.in_flight == 0
        assert sink.buffered == 0
        assert sink.state == SinkState.ACTIVE
        sink.close()

    def test_snapshot_with_nothing_pending(self, auto_client) -> None:
        """测试无待处理记录时检查点立即完成."""
        sink = _make_sink(auto_client)
        sink.open()
        assert sink.snapshot_state() is None
        assert auto_client.submit_count == 0
        sink.close()

    def test_flush_on_checkpoint_disabled(self, fake_client) -> None:
        """测试关闭检查点刷新时不等待."""
        sink = _make_sink(
            fake_client, {"flush.on.checkpoint": "false", "shutdown.timeout.ms": "10"}
        )
        sink.open()
        sink.invoke({"id": 1})

        sink.snapshot_state()

        assert fake_client.submit_count == 0
        assert sink.buffered == 1
        sink.close()

    def test_snapshot_raises_pending_failure(self, fake_client) -> None:
        """测试检查点在等待期间失败时抛出致命异常."""
        sink = _make_sink(fake_client)
        sink.open()
        sink.invoke({"id": 1})

        errors: list = []

        def run_snapshot() -> None:
            try:
                sink.snapshot_state()
            except EngineFailure as e:
                errors.append(e)

        thread = threading.Thread(target=run_snapshot, daemon=True)
        thread.start()
        assert fake_client.submit_event.wait(timeout=1.0)
        fake_client.fail(0, ConnectionError("cluster unavailable"))
        thread.join(timeout=2.0)

        assert len(errors) == 1
        assert sink.state == SinkState.FAILED


class TestElasticsearchSinkFailure:
    """致命失败传播测试."""

    def _failed_sink(self, fake_client) -> ElasticsearchSink:
        sink = _make_sink(
            fake_client,
            {"bulk.flush.max.actions": "1", "bulk.flush.max.concurrent.requests": "3"},
        )
        sink.open()
        sink.invoke({"id": 1})
        fake_client.fail(0, ConnectionError("connection refused"))
        return sink

    def test_state_becomes_failed(self, fake_client) -> None:
        """测试请求失败后状态变为 FAILED."""
        sink = self._failed_sink(fake_client)
        assert sink.state == SinkState.FAILED

    def test_every_call_raises_same_failure(self, fake_client) -> None:
        """测试之后的写入与检查点抛出同一个异常对象."""
        sink = self._failed_sink(fake_client)

        with pytest.raises(EngineFailure) as on_invoke:
            sink.invoke({"id": 2})
        with pytest.raises(EngineFailure) as on_snapshot:
            sink.snapshot_state()

        assert on_invoke.value is on_snapshot.value
        assert fake_client.submit_count == 1

    def test_close_releases_and_raises(self, fake_client) -> None:
        """测试失败后 close 仍释放后端并抛出致命异常."""
        sink = self._failed_sink(fake_client)

        with pytest.raises(EngineFailure):
            sink.close()

        assert fake_client.closed is True
        assert sink.state == SinkState.CLOSED

    def test_custom_failure_handler(self, auto_client) -> None:
        """测试自定义失败处理器优先于配置的策略."""
        auto_client.responder = lambda ops: auto_client.partial_results(
            ops, {0}, status=400
        )
        sink = _make_sink(
            auto_client,
            {"bulk.flush.max.actions": "1"},
            failure_handler=IgnoreFailureHandler(),
        )
        sink.open()
        sink.invoke({"id": 1})
        sink.invoke({"id": 2})
        sink.snapshot_state()

        assert sink.state == SinkState.ACTIVE
        assert sink.stats.operations_ignored == 2
        sink.close()


class TestElasticsearchSinkWithTransport:
    """使用真实 ElasticsearchBulkClient（mock 底层客户端）的集成测试."""

    @patch("elasticsink.connection.tool.Elasticsearch")
    def test_end_to_end(self, mock_es) -> None:
        """测试记录经转换、批量写入后在检查点被确认."""
        mock_es.return_value.ping.return_value = True

        def bulk(operations):
            items = [
                {"index": {"_index": "events", "_id": line["index"]["_id"], "status": 201}}
                for line in operations
                if "index" in line
            ]
            response = type("Response", (), {})()
            response.body = {"errors": False, "items": items}
            return response

        mock_es.return_value.bulk.side_effect = bulk

        with ElasticsearchSink(HOSTS, convert, {"bulk.flush.max.actions": "2"}) as sink:
            for i in range(5):
                sink.invoke({"id": i})
            sink.snapshot_state()
            assert sink.stats.operations_succeeded == 5

        assert mock_es.return_value.bulk.call_count == 3
        mock_es.return_value.close.assert_called_once()

    @patch("elasticsink.connection.tool.Elasticsearch")
    def test_foreign_connector_keys_do_not_break_open(self, mock_es) -> None:
        """测试其他连接器的配置键保留在配置中，但不传给客户端."""
        mock_es.return_value.ping.return_value = True

        sink = ElasticsearchSink(
            HOSTS,
            convert,
            {"cluster.name": "my-cluster", "bulk.flush.max.actions": "1"},
        )
        sink.open()
        sink.close()

        assert sink.config.extra == {"cluster.name": "my-cluster"}
        assert sink.config.max_bulk_actions == 1
        assert "cluster.name" not in mock_es.call_args[1]

    @patch("elasticsink.connection.tool.Elasticsearch")
    def test_close_is_bounded_by_shutdown_timeout(
        self, mock_es, caplog: pytest.LogCaptureFixture
    ) -> None:
        """测试慢请求不会让 close 超出关闭超时太多."""
        mock_es.return_value.ping.return_value = True
        started = threading.Event()
        release = threading.Event()

        def slow_bulk(operations):
            started.set()
            release.wait(timeout=5)
            response = type("Response", (), {})()
            response.body = {
                "errors": False,
                "items": [{"index": {"_index": "events", "_id": "1", "status": 201}}],
            }
            return response

        mock_es.return_value.bulk.side_effect = slow_bulk
        sink = ElasticsearchSink(HOSTS, convert, {"shutdown.timeout.ms": "200"})
        sink.open()
        sink.invoke({"id": 1})

        begin = time.monotonic()
        try:
            with caplog.at_level("WARNING"):
                sink.close()
            elapsed = time.monotonic() - begin
        finally:
            release.set()

        assert started.is_set()
        assert elapsed < 1.5
        assert "关闭时等待在途请求超时" in caplog.text
        assert sink.state == SinkState.CLOSED
