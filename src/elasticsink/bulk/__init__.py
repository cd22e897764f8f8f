"""批量缓冲与刷新协调模块.

该模块提供 Sink 的核心批量引擎，包括：
- 有序缓冲区与数量/字节数/定时刷新触发
- 异步批量请求执行与在途请求计数
- 在途请求数上限（背压）
- 失败处理策略（快速失败、忽略、重试）
- 检查点排空

示例用法:
    >>> from elasticsink.bulk import BulkProcessor, BulkOperation, BulkAction
    >>> processor = BulkProcessor(client, FlushTriggerPolicy(max_actions=1000))
    >>> processor.add(BulkOperation(BulkAction.INDEX, "users", "1", {"name": "Alice"}))
    >>> processor.drain()
"""

from .buffer import BulkBuffer, FlushTriggerPolicy
from .exceptions import (
    BulkOperationError,
    BulkRetryExhaustedError,
    BulkValidationError,
    EngineFailure,
    PartialOperationFailure,
    TransportFailure,
)
from .failure import (
    BackoffPolicy,
    BackoffType,
    FailFastFailureHandler,
    FailureHandler,
    FailureHandlingPolicy,
    FailureResolution,
    IgnoreFailureHandler,
    ResolutionType,
    RetryFailureHandler,
    create_failure_handler,
)
from .models import (
    BulkAction,
    BulkItemResult,
    BulkOperation,
    FlushAttempt,
    FlushOutcome,
    ProcessorStats,
)
from .processor import BulkProcessor

__all__ = [
    # 模型
    "BulkAction",
    "BulkItemResult",
    "BulkOperation",
    "FlushAttempt",
    "FlushOutcome",
    "ProcessorStats",
    # 缓冲与触发
    "BulkBuffer",
    "FlushTriggerPolicy",
    # 处理器
    "BulkProcessor",
    # 失败处理
    "BackoffPolicy",
    "BackoffType",
    "FailFastFailureHandler",
    "FailureHandler",
    "FailureHandlingPolicy",
    "FailureResolution",
    "IgnoreFailureHandler",
    "ResolutionType",
    "RetryFailureHandler",
    "create_failure_handler",
    # 异常
    "BulkOperationError",
    "BulkRetryExhaustedError",
    "BulkValidationError",
    "EngineFailure",
    "PartialOperationFailure",
    "TransportFailure",
]
