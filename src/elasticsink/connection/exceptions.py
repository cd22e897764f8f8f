"""ES 连接异常定义模块."""

from ..exceptions import ConfigurationError


class ConnectionConfigError(ConfigurationError):
    """连接配置校验异常.

    当连接配置参数不合法时抛出，例如 hosts 为 None 或为空、地址格式错误、
    max_connections 小于 1 等。
    """

    pass


class ClusterUnreachableError(ConnectionConfigError):
    """集群不可达异常.

    当 open 阶段无法连接到配置的集群时抛出，不会重试。
    """

    pass
