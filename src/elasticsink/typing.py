"""Elastic Sink 类型定义模块."""

from collections.abc import Callable, Iterable
from typing import Any, Dict

# elasticsearch.helpers 风格的操作字典
# 格式: {"_op_type": "index", "_index": "...", "_id": "...", "_source": {...}}
ActionDict = Dict[str, Any]

# 用户配置字典类型
# 格式: {"bulk.flush.max.actions": "1000", "bulk.flush.interval.ms": "500", ...}
UserConfigDict = Dict[str, Any]

# 记录转换函数类型：一条流记录 -> 零个或多个批量操作
RecordConverter = Callable[[Any], Iterable[Any]]
