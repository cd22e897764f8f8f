"""批量缓冲区与刷新触发策略模块."""

import threading
from collections.abc import Callable
from dataclasses import dataclass

from .models import BulkOperation
from .utils import estimate_size_in_bytes


class BulkBuffer:
    """有序的待刷新操作缓冲区.

    维护操作列表、累计字节数和操作数，三者始终保持一致。
    take_snapshot() 在锁内原子地取走全部内容并重置为空缓冲区，
    因此同一批操作不会被两次刷新。

    Args:
        size_estimator: 单条操作字节数估算函数，默认按 NDJSON 编码估算
    """

    def __init__(
        self,
        size_estimator: Callable[[BulkOperation], int] = estimate_size_in_bytes,
    ) -> None:
        self._size_estimator = size_estimator
        self._lock = threading.Lock()
        self._operations: list[BulkOperation] = []
        self._size_in_bytes = 0

    def add(self, operation: BulkOperation) -> None:
        """追加一条操作并更新计数."""
        size = self._size_estimator(operation)
        with self._lock:
            self._operations.append(operation)
            self._size_in_bytes += size

    def take_snapshot(self) -> list[BulkOperation]:
        """取走当前全部操作并重置缓冲区.

        Returns:
            按入队顺序排列的操作列表，缓冲区为空时返回空列表
        """
        with self._lock:
            snapshot = self._operations
            self._operations = []
            self._size_in_bytes = 0
        return snapshot

    @property
    def count(self) -> int:
        """当前缓冲的操作数."""
        with self._lock:
            return len(self._operations)

    @property
    def size_in_bytes(self) -> int:
        """当前缓冲的估算字节数."""
        with self._lock:
            return self._size_in_bytes

    def is_empty(self) -> bool:
        """缓冲区是否为空."""
        return self.count == 0

    def __len__(self) -> int:
        return self.count


@dataclass(frozen=True)
class FlushTriggerPolicy:
    """按数量和字节数判断是否需要立即刷新.

    阈值为 0 表示关闭对应的触发条件。定时触发由 BulkProcessor 的后台线程负责。

    Attributes:
        max_actions: 操作数阈值
        max_size_bytes: 字节数阈值
    """

    max_actions: int = 0
    max_size_bytes: int = 0

    def should_flush(self, buffer: BulkBuffer) -> bool:
        """按顺序检查操作数阈值和字节数阈值."""
        if self.max_actions > 0 and buffer.count >= self.max_actions:
            return True
        if self.max_size_bytes > 0 and buffer.size_in_bytes >= self.max_size_bytes:
            return True
        return False
