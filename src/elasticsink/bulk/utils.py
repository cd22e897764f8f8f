"""批量操作工具函数模块.

提供操作字典准备、请求体积估算和批量响应解析功能。
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from elasticsearch.helpers import expand_action

from ..typing import ActionDict
from .exceptions import TransportFailure
from .models import BulkAction, BulkItemResult, BulkOperation

logger = logging.getLogger(__name__)

# 每个 NDJSON 行末尾的换行符
_NEWLINE_BYTES = 1


def prepare_bulk_action(operation: BulkOperation) -> ActionDict:
    """准备批量操作所需的动作字典.

    Args:
        operation: 批量操作项

    Returns:
        可用于 elasticsearch.helpers.expand_action 的操作字典
    """
    # 对于 UPSERT 操作，实际使用 UPDATE 作为底层操作类型
    op_type = operation.action.value
    if operation.action == BulkAction.UPSERT:
        op_type = "update"

    action: ActionDict = {
        "_op_type": op_type,
        "_index": operation.index_name,
    }

    if operation.doc_id is not None:
        action["_id"] = operation.doc_id

    if operation.routing is not None:
        action["_routing"] = operation.routing

    if operation.action in (BulkAction.INDEX, BulkAction.CREATE):
        action["_source"] = operation.source
    elif operation.action in (BulkAction.UPDATE, BulkAction.UPSERT):
        if operation.source is not None:
            # UPDATE 操作使用 doc 字段而非 _source
            action["doc"] = operation.source
            if operation.action == BulkAction.UPSERT:
                action["doc_as_upsert"] = True
        if operation.retry_on_conflict is not None:
            action["retry_on_conflict"] = operation.retry_on_conflict

    return action


def serialize_operation(operation: BulkOperation) -> list[dict[str, Any]]:
    """将操作展开为 bulk API 的请求行（动作行 + 可选的数据行）."""
    header, body = expand_action(prepare_bulk_action(operation))
    if body is None:
        return [header]
    return [header, body]


def estimate_size_in_bytes(operation: BulkOperation) -> int:
    """估算单条操作在 bulk 请求体中占用的字节数.

    按 NDJSON 编码计算，包括动作行、数据行和换行符。

    Args:
        operation: 批量操作项

    Returns:
        估算的字节数
    """
    size = 0
    for line in serialize_operation(operation):
        encoded = json.dumps(line, separators=(",", ":"), default=str)
        size += len(encoded.encode("utf-8")) + _NEWLINE_BYTES
    return size


def _format_caused_by(error_info: Mapping[str, Any]) -> str | None:
    """提取根本原因."""
    caused_by_info = error_info.get("caused_by")
    if not caused_by_info:
        return None
    return f"{caused_by_info.get('type', '')}: {caused_by_info.get('reason', '')}"


def parse_bulk_response(
    operations: list[BulkOperation],
    response: Mapping[str, Any],
) -> list[BulkItemResult]:
    """解析 bulk API 响应，转换为逐条结果列表.

    响应中的 items 与请求中的操作按位置一一对应。

    Args:
        operations: 请求中携带的操作（保持提交顺序）
        response: bulk API 响应体

    Returns:
        BulkItemResult 列表，长度与 operations 相同

    Raises:
        TransportFailure: 当响应条目数与请求操作数不一致时抛出
    """
    items = response.get("items", [])
    if len(items) != len(operations):
        raise TransportFailure(
            f"bulk 响应条目数 ({len(items)}) 与请求操作数 ({len(operations)}) 不一致",
            operations,
        )

    results: list[BulkItemResult] = []
    for operation, item in zip(operations, items):
        # item 格式类似: {"index": {"_index": "xxx", "_id": "xxx", "status": 201}}
        info: Mapping[str, Any] = next(iter(item.values()), {})
        status = info.get("status", 0)
        error_info = info.get("error")

        if error_info is None and 200 <= status < 300:
            results.append(
                BulkItemResult(
                    operation=operation,
                    status=status,
                    result=info.get("result"),
                )
            )
            continue

        if isinstance(error_info, Mapping):
            error_type = error_info.get("type", "unknown")
            error_reason = error_info.get("reason", "unknown error")
            caused_by = _format_caused_by(error_info)
        else:
            error_type = "unknown"
            error_reason = str(error_info) if error_info else "unknown error"
            caused_by = None

        results.append(
            BulkItemResult(
                operation=operation,
                status=status,
                ok=False,
                error_type=error_type,
                error_reason=error_reason,
                caused_by=caused_by,
            )
        )

    return results
