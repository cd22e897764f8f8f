"""测试公共 fixtures.

FakeBulkClient 记录每一次提交，返回的 Future 由测试手动完成，
从而可以确定性地驱动在途计数、背压和失败处理。
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future

import pytest

from elasticsink.bulk.models import BulkAction, BulkItemResult, BulkOperation
from elasticsink.client.base import BulkClient
from elasticsink.connection.models import validate_hosts


def ok_results(operations: list[BulkOperation]) -> list[BulkItemResult]:
    """全部成功的逐条结果."""
    return [BulkItemResult(operation=op, status=201, result="created") for op in operations]


def partial_results(
    operations: list[BulkOperation],
    failed_positions: set[int],
    status: int = 429,
) -> list[BulkItemResult]:
    """指定位置失败的逐条结果."""
    results = []
    for i, op in enumerate(operations):
        if i in failed_positions:
            results.append(
                BulkItemResult(
                    operation=op,
                    status=status,
                    ok=False,
                    error_type="es_rejected_execution_exception",
                    error_reason="rejected execution",
                )
            )
        else:
            results.append(BulkItemResult(operation=op, status=201, result="created"))
    return results


class FakeBulkClient(BulkClient):
    """可控的批量写入后端."""

    ok_results = staticmethod(ok_results)
    partial_results = staticmethod(partial_results)

    def __init__(
        self,
        auto_complete: bool = False,
        responder: Callable[[list[BulkOperation]], list[BulkItemResult]] | None = None,
    ) -> None:
        self.auto_complete = auto_complete
        self.responder = responder or ok_results
        self.submitted: list[list[BulkOperation]] = []
        self.futures: list[Future] = []
        self.opened = False
        self.closed = False
        self.submit_error: Exception | None = None
        self._lock = threading.Lock()
        self.submit_event = threading.Event()

    def validate_endpoints(self, hosts: list[str] | None) -> None:
        validate_hosts(hosts)

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def submit_bulk(self, operations: list[BulkOperation]) -> Future:
        if self.submit_error is not None:
            raise self.submit_error
        future: Future = Future()
        with self._lock:
            self.submitted.append(list(operations))
            self.futures.append(future)
        self.submit_event.set()
        if self.auto_complete:
            try:
                future.set_result(self.responder(list(operations)))
            except Exception as e:
                future.set_exception(e)
        return future

    @property
    def submit_count(self) -> int:
        with self._lock:
            return len(self.submitted)

    def complete(self, index: int, results: list[BulkItemResult] | None = None) -> None:
        """以成功（或给定的逐条结果）完成第 index 次提交."""
        with self._lock:
            future = self.futures[index]
            operations = self.submitted[index]
        future.set_result(results if results is not None else ok_results(operations))

    def fail(self, index: int, error: Exception) -> None:
        """以传输层异常完成第 index 次提交."""
        with self._lock:
            future = self.futures[index]
        future.set_exception(error)

    def complete_all(self) -> None:
        """完成所有尚未完成的提交."""
        with self._lock:
            pending = [
                (i, f) for i, f in enumerate(self.futures) if not f.done()
            ]
        for i, _ in pending:
            self.complete(i)


def make_operation(doc_id: int | str, index_name: str = "test-index") -> BulkOperation:
    """创建一条 INDEX 操作."""
    return BulkOperation(
        action=BulkAction.INDEX,
        index_name=index_name,
        doc_id=str(doc_id),
        source={"id": doc_id, "data": f"message #{doc_id}"},
    )


@pytest.fixture
def fake_client() -> FakeBulkClient:
    """手动完成的后端客户端."""
    return FakeBulkClient()


@pytest.fixture
def auto_client() -> FakeBulkClient:
    """提交后立即成功的后端客户端."""
    return FakeBulkClient(auto_complete=True)


@pytest.fixture
def operation_factory() -> Callable[..., BulkOperation]:
    """操作构造函数."""
    return make_operation
