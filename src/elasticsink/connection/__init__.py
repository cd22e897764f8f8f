"""ES 客户端工厂模块 - 统一管理写入集群 Elasticsearch 客户端的创建、连接池配置和生命周期.

主要组件:
    - ESClientFactory: 客户端工厂，支持惰性创建、可达性检查和生命周期管理
    - ClusterConfig: 集群配置模型
    - ConnectionConfig: 连接池配置模型
    - validate_hosts: 节点地址校验

使用示例:
    from elasticsink.connection import ESClientFactory, ClusterConfig

    factory = ESClientFactory(ClusterConfig(hosts=["http://localhost:9200"]))
    client = factory.get_client()
"""

from .exceptions import ClusterUnreachableError, ConnectionConfigError
from .models import ClusterConfig, ConnectionConfig, validate_hosts
from .tool import ESClientFactory

__all__ = [
    # 工厂
    "ESClientFactory",
    # 模型
    "ClusterConfig",
    "ConnectionConfig",
    "validate_hosts",
    # 异常
    "ConnectionConfigError",
    "ClusterUnreachableError",
]
