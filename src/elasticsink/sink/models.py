"""Sink 配置与状态数据模型定义模块.

提供 Sink 相关的数据模型，包括：
- SinkState: Sink 生命周期状态枚举
- SinkConfig: 批量刷新与失败处理配置
- CONFIG_KEY_*: 用户配置字典中可识别的键
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..bulk.buffer import FlushTriggerPolicy
from ..bulk.failure import (
    BackoffPolicy,
    BackoffType,
    FailureHandler,
    FailureHandlingPolicy,
    create_failure_handler,
)
from ..exceptions import ConfigurationError
from ..typing import UserConfigDict
from .utils import parse_bool, parse_int, parse_size_to_bytes, parse_time_to_millis

CONFIG_KEY_BULK_FLUSH_MAX_ACTIONS = "bulk.flush.max.actions"
CONFIG_KEY_BULK_FLUSH_MAX_SIZE_MB = "bulk.flush.max.size.mb"
CONFIG_KEY_BULK_FLUSH_MAX_SIZE = "bulk.flush.max.size"
CONFIG_KEY_BULK_FLUSH_INTERVAL_MS = "bulk.flush.interval.ms"
CONFIG_KEY_BULK_FLUSH_MAX_CONCURRENT_REQUESTS = "bulk.flush.max.concurrent.requests"
CONFIG_KEY_BULK_FLUSH_FAILURE_POLICY = "bulk.flush.failure.policy"
CONFIG_KEY_BULK_FLUSH_BACKOFF_ENABLE = "bulk.flush.backoff.enable"
CONFIG_KEY_BULK_FLUSH_BACKOFF_TYPE = "bulk.flush.backoff.type"
CONFIG_KEY_BULK_FLUSH_BACKOFF_RETRIES = "bulk.flush.backoff.retries"
CONFIG_KEY_BULK_FLUSH_BACKOFF_DELAY = "bulk.flush.backoff.delay"
CONFIG_KEY_BULK_FLUSH_RETRY_STATUSES = "bulk.flush.retry.statuses"
CONFIG_KEY_FLUSH_ON_CHECKPOINT = "flush.on.checkpoint"
CONFIG_KEY_SHUTDOWN_TIMEOUT_MS = "shutdown.timeout.ms"

_BYTES_PER_MB = 1024 * 1024


class SinkState(Enum):
    """Sink 生命周期状态枚举.

    Attributes:
        CREATED: 已构造，尚未 open
        ACTIVE: 正在接收记录，可能有在途请求
        DRAINING: 正在执行检查点排空，仍接收新记录
        FAILED: 终止状态，所有调用都抛出已记录的致命异常
        CLOSED: 已关闭，资源已释放
    """

    CREATED = "created"
    ACTIVE = "active"
    DRAINING = "draining"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass
class SinkConfig:
    """批量刷新与失败处理配置.

    Attributes:
        max_bulk_actions: 按操作数触发刷新的阈值，0 表示关闭，默认 1000
        max_bulk_size_bytes: 按字节数触发刷新的阈值，0 表示关闭，默认 5MB
        max_flush_interval_ms: 定时刷新间隔（毫秒），0 表示关闭，默认 0
        max_concurrent_requests: 最大在途批量请求数，默认 1，必须 >= 1
        failure_handling_policy: 失败处理策略，默认快速失败
        max_retries: 最大重试次数（仅 RETRY 策略），默认 3
        backoff_type: 重试退避类型，默认指数退避
        backoff_delay_ms: 重试初始等待时间（毫秒），默认 50
        retry_statuses: 允许重试的 HTTP 状态码，None 表示全部允许
        flush_on_checkpoint: 检查点时是否排空，关闭后只提供至多一次保证，默认 True
        shutdown_timeout_ms: 关闭时等待在途请求的最长时间（毫秒），默认 30000
        extra: 无法识别的配置项，客户端构造函数支持的键会作为参数透传

    Raises:
        ConfigurationError: 当参数不合法时抛出

    Examples:
        >>> config = SinkConfig(max_bulk_actions=500, max_flush_interval_ms=1000)
        >>> config = SinkConfig.from_user_config({"bulk.flush.max.actions": "1"})
    """

    max_bulk_actions: int = 1000
    max_bulk_size_bytes: int = 5 * _BYTES_PER_MB
    max_flush_interval_ms: int = 0
    max_concurrent_requests: int = 1
    failure_handling_policy: FailureHandlingPolicy | str = (
        FailureHandlingPolicy.FAIL_FAST
    )
    max_retries: int = 3
    backoff_type: BackoffType | str = BackoffType.EXPONENTIAL
    backoff_delay_ms: int = 50
    retry_statuses: frozenset[int] | None = None
    flush_on_checkpoint: bool = True
    shutdown_timeout_ms: int = 30_000
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """校验配置参数合法性."""
        for name in (
            "max_bulk_actions",
            "max_bulk_size_bytes",
            "max_flush_interval_ms",
            "max_retries",
            "backoff_delay_ms",
            "shutdown_timeout_ms",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} 必须 >= 0，当前值: {value}")
        if self.max_concurrent_requests < 1:
            raise ConfigurationError(
                f"max_concurrent_requests 必须 >= 1，当前值: "
                f"{self.max_concurrent_requests}"
            )

        try:
            self.failure_handling_policy = FailureHandlingPolicy(
                self.failure_handling_policy
            )
        except ValueError as e:
            raise ConfigurationError(
                f"不支持的失败处理策略: {self.failure_handling_policy!r}，"
                f"可选值: {[p.value for p in FailureHandlingPolicy]}"
            ) from e
        try:
            self.backoff_type = BackoffType(self.backoff_type)
        except ValueError as e:
            raise ConfigurationError(
                f"不支持的退避类型: {self.backoff_type!r}，"
                f"可选值: {[t.value for t in BackoffType]}"
            ) from e
        if self.retry_statuses is not None:
            self.retry_statuses = frozenset(self.retry_statuses)

    @property
    def shutdown_timeout(self) -> float:
        """关闭超时秒数."""
        return self.shutdown_timeout_ms / 1000

    def trigger_policy(self) -> FlushTriggerPolicy:
        """创建数量/字节数触发策略."""
        return FlushTriggerPolicy(
            max_actions=self.max_bulk_actions,
            max_size_bytes=self.max_bulk_size_bytes,
        )

    def backoff_policy(self) -> BackoffPolicy:
        """创建重试退避策略."""
        return BackoffPolicy(type=self.backoff_type, delay_ms=self.backoff_delay_ms)

    def create_failure_handler(self) -> FailureHandler:
        """按配置的策略创建失败处理器."""
        return create_failure_handler(
            self.failure_handling_policy,
            max_retries=self.max_retries,
            backoff=self.backoff_policy(),
            retry_statuses=self.retry_statuses,
        )

    @classmethod
    def from_user_config(cls, user_config: UserConfigDict | None) -> SinkConfig:
        """从字符串键值的用户配置字典创建配置.

        可识别的键见模块级 CONFIG_KEY_* 常量，其余键放入 extra 透传。
        仅开启 bulk.flush.backoff.enable 而未指定策略时，使用 RETRY 策略。

        Args:
            user_config: 用户配置字典

        Returns:
            SinkConfig 实例

        Raises:
            ConfigurationError: 当配置值不合法时抛出
        """
        config = dict(user_config or {})
        kwargs: dict[str, Any] = {}

        if CONFIG_KEY_BULK_FLUSH_MAX_ACTIONS in config:
            kwargs["max_bulk_actions"] = parse_int(
                CONFIG_KEY_BULK_FLUSH_MAX_ACTIONS,
                config.pop(CONFIG_KEY_BULK_FLUSH_MAX_ACTIONS),
            )
        if CONFIG_KEY_BULK_FLUSH_MAX_SIZE_MB in config:
            kwargs["max_bulk_size_bytes"] = (
                parse_int(
                    CONFIG_KEY_BULK_FLUSH_MAX_SIZE_MB,
                    config.pop(CONFIG_KEY_BULK_FLUSH_MAX_SIZE_MB),
                )
                * _BYTES_PER_MB
            )
        if CONFIG_KEY_BULK_FLUSH_MAX_SIZE in config:
            kwargs["max_bulk_size_bytes"] = parse_size_to_bytes(
                config.pop(CONFIG_KEY_BULK_FLUSH_MAX_SIZE)
            )
        if CONFIG_KEY_BULK_FLUSH_INTERVAL_MS in config:
            kwargs["max_flush_interval_ms"] = parse_time_to_millis(
                config.pop(CONFIG_KEY_BULK_FLUSH_INTERVAL_MS)
            )
        if CONFIG_KEY_BULK_FLUSH_MAX_CONCURRENT_REQUESTS in config:
            kwargs["max_concurrent_requests"] = parse_int(
                CONFIG_KEY_BULK_FLUSH_MAX_CONCURRENT_REQUESTS,
                config.pop(CONFIG_KEY_BULK_FLUSH_MAX_CONCURRENT_REQUESTS),
            )

        backoff_enabled = False
        if CONFIG_KEY_BULK_FLUSH_BACKOFF_ENABLE in config:
            backoff_enabled = parse_bool(
                CONFIG_KEY_BULK_FLUSH_BACKOFF_ENABLE,
                config.pop(CONFIG_KEY_BULK_FLUSH_BACKOFF_ENABLE),
            )
        if CONFIG_KEY_BULK_FLUSH_FAILURE_POLICY in config:
            kwargs["failure_handling_policy"] = str(
                config.pop(CONFIG_KEY_BULK_FLUSH_FAILURE_POLICY)
            ).lower()
        elif backoff_enabled:
            kwargs["failure_handling_policy"] = FailureHandlingPolicy.RETRY

        if CONFIG_KEY_BULK_FLUSH_BACKOFF_TYPE in config:
            kwargs["backoff_type"] = str(
                config.pop(CONFIG_KEY_BULK_FLUSH_BACKOFF_TYPE)
            ).lower()
        if CONFIG_KEY_BULK_FLUSH_BACKOFF_RETRIES in config:
            kwargs["max_retries"] = parse_int(
                CONFIG_KEY_BULK_FLUSH_BACKOFF_RETRIES,
                config.pop(CONFIG_KEY_BULK_FLUSH_BACKOFF_RETRIES),
            )
        if CONFIG_KEY_BULK_FLUSH_BACKOFF_DELAY in config:
            kwargs["backoff_delay_ms"] = parse_time_to_millis(
                config.pop(CONFIG_KEY_BULK_FLUSH_BACKOFF_DELAY)
            )
        if CONFIG_KEY_BULK_FLUSH_RETRY_STATUSES in config:
            raw = config.pop(CONFIG_KEY_BULK_FLUSH_RETRY_STATUSES)
            parts = raw.split(",") if isinstance(raw, str) else raw
            kwargs["retry_statuses"] = frozenset(
                parse_int(CONFIG_KEY_BULK_FLUSH_RETRY_STATUSES, p) for p in parts
            )
        if CONFIG_KEY_FLUSH_ON_CHECKPOINT in config:
            kwargs["flush_on_checkpoint"] = parse_bool(
                CONFIG_KEY_FLUSH_ON_CHECKPOINT,
                config.pop(CONFIG_KEY_FLUSH_ON_CHECKPOINT),
            )
        if CONFIG_KEY_SHUTDOWN_TIMEOUT_MS in config:
            kwargs["shutdown_timeout_ms"] = parse_time_to_millis(
                config.pop(CONFIG_KEY_SHUTDOWN_TIMEOUT_MS)
            )

        return cls(**kwargs, extra=config)
