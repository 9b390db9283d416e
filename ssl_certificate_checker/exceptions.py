"""
异常定义
"""


class ConfigurationError(Exception):
    """配置错误：在任何探测开始之前致命"""


class ProbeCancelled(Exception):
    """探测被取消，不产生任何结果"""
