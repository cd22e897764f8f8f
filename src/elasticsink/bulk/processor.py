"""批量处理器核心模块.

BulkProcessor 负责缓冲操作、按数量/字节数/时间触发刷新、异步执行批量请求、
按失败策略处理结果，并在检查点时等待所有请求完成。

并发模型:
    - 写入线程调用 add()/flush()/drain()
    - 定时刷新线程按 flush_interval_ms 周期调用 flush()
    - 后端客户端线程执行完成回调
    - 在途计数与致命异常由同一个 Condition 保护；三条触发路径由刷新锁串行化
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import CancelledError, Future
from typing import TYPE_CHECKING

from ..exceptions import ConfigurationError, SinkStateError
from .buffer import BulkBuffer, FlushTriggerPolicy
from .exceptions import EngineFailure, PartialOperationFailure, TransportFailure
from .failure import (
    BulkFailure,
    FailFastFailureHandler,
    FailureHandler,
    FailureResolution,
    ResolutionType,
)
from .models import (
    BulkItemResult,
    BulkOperation,
    FlushAttempt,
    FlushOutcome,
    ProcessorStats,
)

if TYPE_CHECKING:
    from ..client.base import BulkClient

logger = logging.getLogger(__name__)


class BulkProcessor:
    """批量缓冲与刷新协调器.

    Args:
        client: 批量写入后端客户端
        trigger_policy: 数量/字节数触发策略，默认不按数量或字节数触发
        flush_interval_ms: 定时刷新间隔（毫秒），0 表示关闭定时刷新
        max_concurrent_requests: 最大在途批量请求数，必须 >= 1
        failure_handler: 失败处理器，默认快速失败
        buffer: 自定义缓冲区，默认新建 BulkBuffer

    Raises:
        ConfigurationError: 当参数不合法时抛出
    """

    def __init__(
        self,
        client: BulkClient,
        trigger_policy: FlushTriggerPolicy | None = None,
        flush_interval_ms: int = 0,
        max_concurrent_requests: int = 1,
        failure_handler: FailureHandler | None = None,
        buffer: BulkBuffer | None = None,
    ) -> None:
        if max_concurrent_requests < 1:
            raise ConfigurationError(
                f"max_concurrent_requests 必须 >= 1，当前值: {max_concurrent_requests}"
            )
        if flush_interval_ms < 0:
            raise ConfigurationError(
                f"flush_interval_ms 必须 >= 0，当前值: {flush_interval_ms}"
            )

        self._client = client
        self._trigger_policy = trigger_policy or FlushTriggerPolicy()
        self._flush_interval = flush_interval_ms / 1000
        self._max_concurrent_requests = max_concurrent_requests
        self._failure_handler = failure_handler or FailFastFailureHandler()
        self._buffer = buffer if buffer is not None else BulkBuffer()

        self._flush_lock = threading.RLock()
        self._condition = threading.Condition()
        self._in_flight = 0
        self._failure: EngineFailure | None = None
        self._stats = ProcessorStats()
        self._closed = False

        self._stop_event = threading.Event()
        self._timer_thread: threading.Thread | None = None
        if flush_interval_ms > 0:
            self._timer_thread = threading.Thread(
                target=self._run_timer,
                name="elasticsink-flush-timer",
                daemon=True,
            )
            self._timer_thread.start()

        logger.info(
            f"初始化批量处理器: max_actions={self._trigger_policy.max_actions}, "
            f"max_size_bytes={self._trigger_policy.max_size_bytes}, "
            f"flush_interval_ms={flush_interval_ms}, "
            f"max_concurrent_requests={max_concurrent_requests}, "
            f"failure_handler={type(self._failure_handler).__name__}"
        )

    # ============================================================
    # 状态查询
    # ============================================================

    @property
    def in_flight(self) -> int:
        """当前在途的批量请求数."""
        with self._condition:
            return self._in_flight

    @property
    def buffered(self) -> int:
        """当前缓冲区中的操作数."""
        return self._buffer.count

    @property
    def failure(self) -> EngineFailure | None:
        """已记录的致命异常."""
        with self._condition:
            return self._failure

    @property
    def stats(self) -> ProcessorStats:
        """统计数据快照."""
        with self._condition:
            return dataclasses.replace(self._stats)

    def check_failure(self) -> None:
        """如果已记录致命异常，重新抛出同一个异常对象."""
        with self._condition:
            failure = self._failure
        if failure is not None:
            raise failure

    # ============================================================
    # 写入与刷新
    # ============================================================

    def add(self, operation: BulkOperation) -> None:
        """追加一条操作，达到数量或字节数阈值时同步启动刷新.

        Args:
            operation: 批量操作项

        Raises:
            EngineFailure: 已进入致命状态时抛出已记录的异常
            SinkStateError: 处理器已关闭时抛出
        """
        self.check_failure()
        if self._closed:
            raise SinkStateError("批量处理器已关闭，无法继续写入")

        self._buffer.add(operation)
        if self._trigger_policy.should_flush(self._buffer):
            self.flush()

    def add_all(self, operations: Iterable[BulkOperation]) -> None:
        """按顺序追加多条操作."""
        for operation in operations:
            self.add(operation)

    def flush(self) -> bool:
        """强制刷新缓冲区中的全部操作（忽略阈值）.

        调用方阻塞到请求被提交为止（包括等待在途请求数低于上限），
        不等待请求完成。

        Returns:
            是否提交了新的批量请求（缓冲区为空时返回 False）

        Raises:
            EngineFailure: 已进入致命状态时抛出已记录的异常
        """
        with self._flush_lock:
            self.check_failure()
            if self._buffer.is_empty():
                return False

            self._acquire_slot()
            operations = self._buffer.take_snapshot()
            if not operations:
                self._release_slot()
                return False

            self._submit(FlushAttempt(operations=operations))
            return True

    def drain(self) -> None:
        """刷新缓冲区并阻塞到所有在途请求完成.

        用于检查点：返回时在途请求数为 0 且缓冲区为空。

        Raises:
            EngineFailure: 开始前或等待期间进入致命状态时抛出
        """
        self.flush()
        with self._condition:
            while self._in_flight > 0 and self._failure is None:
                self._condition.wait()
            failure = self._failure
        if failure is not None:
            raise failure
        logger.debug("批量处理器已排空，无在途请求")

    def wait_for_in_flight(self, timeout: float | None = None) -> bool:
        """等待在途请求全部完成.

        Args:
            timeout: 最长等待秒数，None 表示一直等待

        Returns:
            在超时前全部完成返回 True，否则返回 False
        """
        with self._condition:
            return self._condition.wait_for(
                lambda: self._in_flight == 0 or self._failure is not None,
                timeout=timeout,
            ) and self._in_flight == 0

    def close(self, timeout: float | None = None) -> None:
        """停止定时刷新，执行最后一次刷新并等待在途请求完成.

        超时只记录日志，不抛出异常。

        Args:
            timeout: 等待在途请求的最长秒数

        Raises:
            EngineFailure: 已进入致命状态时抛出已记录的异常
        """
        if self._closed:
            return
        self._stop_event.set()
        if self._timer_thread is not None:
            self._timer_thread.join(timeout)

        try:
            if self.failure is None:
                self.flush()
                if not self.wait_for_in_flight(timeout):
                    if self.failure is None:
                        logger.warning(
                            f"关闭时等待在途请求超时 ({timeout} 秒)，"
                            f"仍有 {self.in_flight} 个请求未完成"
                        )
        finally:
            self._closed = True
            logger.info(f"批量处理器已关闭: {self.stats}")

        self.check_failure()

    # ============================================================
    # 刷新执行与完成回调
    # ============================================================

    def _acquire_slot(self) -> None:
        """占用一个在途请求名额，达到上限时阻塞（背压）."""
        with self._condition:
            if self._in_flight >= self._max_concurrent_requests:
                logger.debug(
                    f"在途请求数已达上限 {self._max_concurrent_requests}，等待..."
                )
            while (
                self._in_flight >= self._max_concurrent_requests
                and self._failure is None
            ):
                self._condition.wait()
            if self._failure is not None:
                raise self._failure
            self._in_flight += 1

    def _release_slot(self) -> None:
        """释放一个在途请求名额并唤醒等待者."""
        with self._condition:
            if self._in_flight <= 0:
                logger.error("在途请求计数不能为负，释放次数多于占用次数")
                self._set_failure(EngineFailure("在途请求计数不一致"))
                return
            self._in_flight -= 1
            self._condition.notify_all()

    def _submit(self, attempt: FlushAttempt) -> None:
        """提交批量请求，调用前必须已占用在途名额."""
        attempt.started_at = time.monotonic()
        with self._condition:
            self._stats.flushes_started += 1
            self._stats.operations_submitted += attempt.size

        logger.debug(
            f"提交批量请求 {attempt.attempt_id}: {attempt.size} 个操作, "
            f"retry={attempt.retry_count}"
        )
        try:
            future = self._client.submit_bulk(attempt.operations)
        except Exception as e:
            self._complete(attempt, error=self._as_transport_failure(attempt, e))
            return
        future.add_done_callback(functools.partial(self._on_done, attempt))

    def _on_done(
        self, attempt: FlushAttempt, future: Future[list[BulkItemResult]]
    ) -> None:
        try:
            item_results = future.result()
        except (Exception, CancelledError) as e:
            self._complete(attempt, error=self._as_transport_failure(attempt, e))
            return
        self._complete(attempt, item_results=item_results)

    @staticmethod
    def _as_transport_failure(
        attempt: FlushAttempt, error: BaseException
    ) -> TransportFailure:
        if isinstance(error, TransportFailure):
            return error
        failure = TransportFailure(
            f"批量请求 {attempt.attempt_id} 失败: {error}", attempt.operations
        )
        failure.__cause__ = error
        return failure

    def _complete(
        self,
        attempt: FlushAttempt,
        item_results: list[BulkItemResult] | None = None,
        error: TransportFailure | None = None,
    ) -> None:
        """分类请求结果、交给失败处理器并释放在途名额."""
        release_slot = True
        try:
            failure: BulkFailure | None = None
            if error is not None:
                attempt.outcome = FlushOutcome.FAILED
                attempt.error = error
                failure = error
            else:
                attempt.item_results = list(item_results or [])
                failed_items = attempt.failed_items
                if failed_items:
                    attempt.outcome = FlushOutcome.PARTIALLY_FAILED
                    failure = PartialOperationFailure(
                        f"批量请求 {attempt.attempt_id} 中 {len(failed_items)}/"
                        f"{attempt.size} 个操作失败",
                        failed_items,
                    )
                else:
                    attempt.outcome = FlushOutcome.SUCCEEDED
            self._record_outcome(attempt)

            if failure is not None:
                resolution = self._failure_handler.on_failure(attempt, failure)
                release_slot = not self._apply_resolution(attempt, resolution)
        except Exception as e:
            logger.exception(f"处理批量请求 {attempt.attempt_id} 的结果时出错")
            engine_failure = EngineFailure(f"处理批量请求结果时出错: {e}")
            engine_failure.__cause__ = e
            self._set_failure(engine_failure)
        finally:
            if release_slot:
                self._release_slot()

    def _record_outcome(self, attempt: FlushAttempt) -> None:
        with self._condition:
            if attempt.outcome == FlushOutcome.SUCCEEDED:
                self._stats.flushes_succeeded += 1
                self._stats.operations_succeeded += attempt.size
            elif attempt.outcome == FlushOutcome.PARTIALLY_FAILED:
                failed = len(attempt.failed_items)
                self._stats.flushes_partially_failed += 1
                self._stats.operations_succeeded += attempt.size - failed
                self._stats.operations_failed += failed
            else:
                self._stats.flushes_failed += 1
                self._stats.operations_failed += attempt.size

        if attempt.outcome == FlushOutcome.SUCCEEDED:
            logger.debug(
                f"批量请求 {attempt.attempt_id}: 全部成功 ({attempt.size}), "
                f"耗时 {attempt.elapsed():.3f} 秒"
            )
        else:
            logger.warning(
                f"批量请求 {attempt.attempt_id}: {attempt.outcome.value}, "
                f"{attempt.get_error_summary()}"
            )

    def _apply_resolution(
        self, attempt: FlushAttempt, resolution: FailureResolution
    ) -> bool:
        """执行失败处理结果.

        Returns:
            在途名额是否已转交给重试请求
        """
        if resolution.type == ResolutionType.IGNORE:
            with self._condition:
                self._stats.operations_ignored += (
                    attempt.size if attempt.error else len(attempt.failed_items)
                )
            return False

        if resolution.type == ResolutionType.FAIL:
            assert resolution.error is not None
            self._set_failure(resolution.error)
            return False

        # 其他请求已经导致致命失败时不再重试
        if self.failure is not None or not resolution.retry_operations:
            return False

        retry_attempt = FlushAttempt(
            operations=resolution.retry_operations,
            retry_count=attempt.retry_count + 1,
        )
        with self._condition:
            self._stats.operations_retried += retry_attempt.size

        # 重试请求沿用原请求的在途名额
        if resolution.delay > 0:
            timer = threading.Timer(resolution.delay, self._submit, args=(retry_attempt,))
            timer.daemon = True
            timer.start()
        else:
            self._submit(retry_attempt)
        return True

    def _set_failure(self, error: EngineFailure) -> None:
        """记录第一个致命异常，之后的异常不会覆盖它."""
        with self._condition:
            if self._failure is None:
                self._failure = error
                logger.error(f"批量处理器进入致命状态: {error}")
            else:
                logger.debug(f"已处于致命状态，忽略后续异常: {error}")
            self._condition.notify_all()

    def _run_timer(self) -> None:
        """定时刷新线程，覆盖数量/字节数阈值长期达不到的低流量场景."""
        while not self._stop_event.wait(self._flush_interval):
            if self.failure is not None:
                continue
            try:
                if self.flush():
                    logger.debug("定时触发刷新")
            except EngineFailure:
                # 已记录，由写入线程或检查点抛出
                continue
            except Exception as e:
                logger.exception("定时刷新失败")
                engine_failure = EngineFailure(f"定时刷新失败: {e}")
                engine_failure.__cause__ = e
                self._set_failure(engine_failure)
