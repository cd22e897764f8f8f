"""批量写入后端客户端模块.

主要组件:
    - BulkClient: 后端客户端接口 {validate_endpoints, submit_bulk, close}
    - ElasticsearchBulkClient: 基于官方 elasticsearch 客户端的实现
"""

from .base import BulkClient
from .transport import ElasticsearchBulkClient

__all__ = [
    "BulkClient",
    "ElasticsearchBulkClient",
]
