"""Elastic Sink 异常定义模块."""


class ElasticSinkError(Exception):
    """Elastic Sink 基础异常类."""

    pass


class ConfigurationError(ElasticSinkError):
    """配置异常.

    当阈值、失败策略或连接参数不合法时在构造阶段同步抛出，不会重试。
    """

    pass


class SinkStateError(ElasticSinkError):
    """Sink 生命周期状态异常（如未 open 就写入、close 之后继续写入）."""

    pass
