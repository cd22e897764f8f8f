"""写入集群连接数据模型.

validate_hosts 在 Sink 构造阶段校验节点地址，ClusterConfig 描述写入目标集群，
ConnectionConfig 描述底层 HTTP 连接池。
"""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from .exceptions import ConnectionConfigError

_SUPPORTED_SCHEMES = ("http", "https")


def validate_hosts(hosts: list[str] | None) -> None:
    """校验节点地址列表.

    每个地址必须包含 http/https scheme 和主机名，例如 "http://localhost:9200"。

    Args:
        hosts: 节点地址列表

    Raises:
        ConnectionConfigError: 当 hosts 为 None、为空或包含不合法地址时抛出

    Examples:
        >>> validate_hosts(["http://localhost:9200"])
        >>> validate_hosts([])
        Traceback (most recent call last):
        ...
        elasticsink.connection.exceptions.ConnectionConfigError: hosts 不能为空，请提供至少一个 ES 节点地址
    """
    if hosts is None:
        raise ConnectionConfigError("hosts 不能为 None，请提供至少一个 ES 节点地址")
    if not hosts:
        raise ConnectionConfigError("hosts 不能为空，请提供至少一个 ES 节点地址")

    for host in hosts:
        if not isinstance(host, str) or not host:
            raise ConnectionConfigError(f"不合法的 ES 节点地址: {host!r}")
        parsed = urlparse(host)
        if parsed.scheme not in _SUPPORTED_SCHEMES or not parsed.hostname:
            raise ConnectionConfigError(
                f"不合法的 ES 节点地址: {host!r}，需要形如 http://host:9200"
            )
        try:
            parsed.port
        except ValueError as e:
            raise ConnectionConfigError(f"ES 节点地址端口不合法: {host!r}") from e


@dataclass
class ClusterConfig:
    """写入目标集群.

    认证方式按 Basic Auth、API Key、Bearer Token 的顺序传给客户端，
    未提供时使用匿名访问。

    Attributes:
        hosts: 节点地址列表，构造时校验
        username: 用户名，与 password 同时提供时启用 Basic Auth
        password: 密码
        api_key: API Key，可以是编码后的字符串或 (id, key) 元组
        bearer_token: Bearer Token
        ca_certs: 自签名集群的 CA 证书路径
        verify_certs: 是否校验服务端证书

    Examples:
        >>> ClusterConfig(hosts=["https://es.example.com:9243"], api_key="base64key")
    """

    hosts: list[str] | None = field(default_factory=list)
    username: str | None = None
    password: str | None = None
    api_key: str | tuple[str, str] | None = None
    bearer_token: str | None = None
    ca_certs: str | None = None
    verify_certs: bool = True

    def __post_init__(self) -> None:
        validate_hosts(self.hosts)


@dataclass
class ConnectionConfig:
    """底层 HTTP 连接池参数.

    这里的重试只作用于单次 HTTP 请求（如节点切换、超时），
    整个批量请求失败后如何处理由 Sink 的失败处理策略决定。

    Attributes:
        max_connections: 每个节点的连接数上限，必须 >= 1
        max_retries: 单次 HTTP 请求的重试次数
        retry_on_timeout: 请求超时后是否换节点重试
        request_timeout: 单次请求超时秒数，必须 >= 0
        http_compress: 是否对请求体启用 gzip 压缩
        sniff_on_start: 创建客户端时是否嗅探集群节点
        sniff_on_node_failure: 节点失败时是否重新嗅探
        min_delay_between_sniffing: 两次嗅探之间的最小间隔秒数
        extra: 传给 Elasticsearch 构造函数的其他参数，可覆盖上面的值，
            构造函数不支持的键会被忽略

    Raises:
        ConnectionConfigError: 连接数或超时不合法时抛出
    """

    max_connections: int = 10
    max_retries: int = 3
    retry_on_timeout: bool = True
    request_timeout: int = 30
    http_compress: bool = True
    sniff_on_start: bool = False
    sniff_on_node_failure: bool = False
    min_delay_between_sniffing: float = 10.0
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_connections < 1:
            raise ConnectionConfigError(
                f"max_connections 必须 >= 1，当前值: {self.max_connections}"
            )
        if self.request_timeout < 0:
            raise ConnectionConfigError(
                f"request_timeout 必须 >= 0，当前值: {self.request_timeout}"
            )
