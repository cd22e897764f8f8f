"""ES 客户端工厂工具模块.

提供 ESClientFactory 类，用于统一管理写入集群 Elasticsearch 客户端的创建、
连接池配置、可达性检查和生命周期。

使用示例:
    from elasticsink.connection import ESClientFactory, ClusterConfig

    with ESClientFactory(ClusterConfig(hosts=["http://localhost:9200"])) as factory:
        factory.check_reachable()
        client = factory.get_client()
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

from elasticsearch import Elasticsearch

from .exceptions import ClusterUnreachableError, ConnectionConfigError
from .models import ClusterConfig, ConnectionConfig

logger = logging.getLogger(__name__)

# Elasticsearch 构造函数的关键字参数
_CLIENT_PARAMETERS = frozenset(
    inspect.signature(Elasticsearch.__init__).parameters
) - {"self"}


class ESClientFactory:
    """Elasticsearch 客户端工厂.

    惰性创建并缓存客户端，支持多认证方式、可达性检查和上下文管理器。

    Attributes:
        _cluster: 集群配置
        _connection_config: 连接池配置
        _client: 缓存的客户端

    Examples:
        >>> factory = ESClientFactory(ClusterConfig(hosts=["http://localhost:9200"]))
        >>> client = factory.get_client()
    """

    def __init__(
        self,
        cluster: ClusterConfig,
        connection_config: ConnectionConfig | None = None,
    ) -> None:
        """初始化客户端工厂.

        Args:
            cluster: 集群配置，不可为 None
            connection_config: 连接池配置，默认使用 ConnectionConfig 的默认值

        Raises:
            ConnectionConfigError: 当 cluster 为 None 时抛出
        """
        if cluster is None:
            raise ConnectionConfigError("cluster 不能为 None，请提供集群配置")
        self._cluster = cluster
        self._connection_config = connection_config or ConnectionConfig()
        self._client: Elasticsearch | None = None

    @property
    def cluster(self) -> ClusterConfig:
        """集群配置."""
        return self._cluster

    def _create_client(self) -> Elasticsearch:
        """根据集群配置创建 Elasticsearch 客户端实例.

        根据认证方式（Basic Auth / API Key / Bearer Token / 无认证）
        和 SSL 配置构建客户端。

        Returns:
            Elasticsearch 客户端实例
        """
        conn = self._connection_config
        kwargs: dict = {
            "hosts": self._cluster.hosts,
            "connections_per_node": conn.max_connections,
            "max_retries": conn.max_retries,
            "retry_on_timeout": conn.retry_on_timeout,
            "request_timeout": conn.request_timeout,
            "http_compress": conn.http_compress,
            "sniff_on_start": conn.sniff_on_start,
            "sniff_on_node_failure": conn.sniff_on_node_failure,
            "min_delay_between_sniffing": conn.min_delay_between_sniffing,
        }

        # Basic Auth 认证
        if self._cluster.username and self._cluster.password:
            kwargs["basic_auth"] = (self._cluster.username, self._cluster.password)

        # API Key 认证
        if self._cluster.api_key:
            kwargs["api_key"] = self._cluster.api_key

        # Bearer Token 认证
        if self._cluster.bearer_token:
            kwargs["bearer_auth"] = self._cluster.bearer_token

        # SSL/TLS 配置
        if self._cluster.ca_certs:
            kwargs["ca_certs"] = self._cluster.ca_certs
        kwargs["verify_certs"] = self._cluster.verify_certs

        # 透传参数放在最后，允许覆盖上面的默认值
        kwargs.update(self._client_parameters(conn.extra))

        logger.info(f"创建 Elasticsearch 客户端: hosts={self._cluster.hosts}")
        return Elasticsearch(**kwargs)

    @staticmethod
    def _client_parameters(extra: dict[str, Any]) -> dict[str, Any]:
        """筛选 Elasticsearch 构造函数能识别的透传参数.

        用户配置中可能带有其他连接器的键（如 cluster.name），这些键保留在配置中，
        但不传给客户端。
        """
        accepted = {k: v for k, v in extra.items() if k in _CLIENT_PARAMETERS}
        ignored = sorted(k for k in extra if k not in _CLIENT_PARAMETERS)
        if ignored:
            logger.warning(f"Elasticsearch 客户端不支持以下配置项，已忽略: {ignored}")
        return accepted

    def get_client(self) -> Elasticsearch:
        """获取客户端，首次调用时创建并缓存.

        Returns:
            Elasticsearch 客户端实例
        """
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def set_connection_config(self, config: ConnectionConfig) -> ESClientFactory:
        """设置连接池配置.

        仅影响后续新创建的客户端，不影响已缓存客户端。支持链式调用。

        Args:
            config: 新的连接池配置

        Returns:
            工厂实例自身（支持链式调用）
        """
        self._connection_config = config
        return self

    def check_reachable(self) -> None:
        """检查集群是否可达.

        Raises:
            ClusterUnreachableError: 当 ping 失败或抛出异常时抛出
        """
        client = self.get_client()
        try:
            reachable = client.ping()
        except Exception as e:
            raise ClusterUnreachableError(
                f"无法连接到 ES 集群 {self._cluster.hosts}: {e}"
            ) from e
        if not reachable:
            raise ClusterUnreachableError(
                f"无法连接到 ES 集群 {self._cluster.hosts}"
            )

    # ============================================================
    # 生命周期管理
    # ============================================================

    def __enter__(self) -> ESClientFactory:
        """上下文管理器入口.

        Returns:
            工厂实例自身
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """上下文管理器退出，自动关闭客户端."""
        self.close()

    def close(self) -> None:
        """关闭已创建的客户端连接并清空缓存.

        关闭后可重新调用 get_client() 创建新的客户端。
        """
        if self._client is None:
            return
        try:
            self._client.close()
        except Exception as e:
            logger.warning(f"关闭 Elasticsearch 客户端失败: {e}")
        self._client = None
