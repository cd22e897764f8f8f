"""Sink 配置解析工具函数模块.

提供 ES 大小格式与时间格式的校验与解析，以及用户配置字符串值的转换。
"""

import re
from typing import Any

from ..exceptions import ConfigurationError

# ES 时间格式正则：数字 + 时间单位（ms, s, m, h, d）
_TIME_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")

# ES 大小格式正则：数字 + 大小单位（b, kb, mb, gb）不区分大小写
_SIZE_PATTERN = re.compile(r"^(\d+)(b|kb|mb|gb)$", re.IGNORECASE)

# 时间单位到毫秒的转换映射
_TIME_UNIT_TO_MILLIS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

# 大小单位到字节的转换映射
_SIZE_UNIT_TO_BYTES: dict[str, int] = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
}

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def validate_time_format(value: str) -> bool:
    """校验值是否符合 ES 时间格式.

    Args:
        value: 待校验的时间格式字符串，如 "500ms", "1s", "5m"

    Returns:
        True 表示格式合法，False 表示格式不合法

    Examples:
        >>> validate_time_format("500ms")
        True
        >>> validate_time_format("abc")
        False
    """
    if not isinstance(value, str) or not value:
        return False
    return _TIME_PATTERN.match(value) is not None


def validate_size_format(value: str) -> bool:
    """校验值是否符合 ES 大小格式.

    支持的大小单位（不区分大小写）：b、kb、mb、gb。

    Examples:
        >>> validate_size_format("5mb")
        True
        >>> validate_size_format("5")
        False
    """
    if not isinstance(value, str) or not value:
        return False
    return _SIZE_PATTERN.match(value) is not None


def parse_time_to_millis(value: str | int) -> int:
    """将 ES 时间格式或纯数字转换为毫秒数.

    纯数字（整数或数字字符串）按毫秒处理。

    Args:
        value: 时间值，如 "500ms", "1s", 1000, "1000"

    Returns:
        对应的毫秒数

    Raises:
        ConfigurationError: 当格式不合法时抛出

    Examples:
        >>> parse_time_to_millis("1s")
        1000
        >>> parse_time_to_millis("250")
        250
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if not validate_time_format(value):
        raise ConfigurationError(f"不合法的时间格式: {value!r}")

    match = _TIME_PATTERN.match(value)
    # validate_time_format 已确保 match 不为 None
    assert match is not None
    return int(match.group(1)) * _TIME_UNIT_TO_MILLIS[match.group(2)]


def parse_size_to_bytes(value: str | int) -> int:
    """将 ES 大小格式或纯数字转换为字节数.

    纯数字（整数或数字字符串）按字节处理。

    Examples:
        >>> parse_size_to_bytes("5mb")
        5242880
        >>> parse_size_to_bytes(1024)
        1024
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if not validate_size_format(value):
        raise ConfigurationError(f"不合法的大小格式: {value!r}")

    match = _SIZE_PATTERN.match(value)
    assert match is not None
    return int(match.group(1)) * _SIZE_UNIT_TO_BYTES[match.group(2).lower()]


def parse_int(key: str, value: Any) -> int:
    """将配置值转换为整数."""
    if isinstance(value, bool):
        raise ConfigurationError(f"配置项 {key} 需要整数，当前值: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"配置项 {key} 需要整数，当前值: {value!r}") from e


def parse_bool(key: str, value: Any) -> bool:
    """将配置值转换为布尔值."""
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"配置项 {key} 需要布尔值，当前值: {value!r}")
