"""
配置加载与验证服务
"""
import os
from typing import Any, Dict, List, Optional, Tuple
import logging

import yaml

from ..exceptions import ConfigurationError
from ..models import QueryConfig


DEFAULT_CONFIG_PATH = "~/.config/ssl-checker/config.yaml"


class ConfigLoader:
    """配置加载器：读取YAML配置并在加载时完成类型验证"""

    # 可选的顶层设置及其类型
    setting_types = {
        'timeout': int,
        'silent': bool,
        'debug': bool,
        'warning_days': int,
        'default_port': int,
        'max_workers': int,
        'verify': bool,
        'log_file': str,
        'sns_topic_arn': str,
    }

    def __init__(self):
        """初始化配置加载器"""
        self.logger = logging.getLogger(__name__)

    def load(self, path: Optional[str] = None) -> Tuple[QueryConfig, Dict[str, Any]]:
        """
        加载配置文件

        未指定路径时使用默认位置，默认文件不存在不视为错误；
        显式指定的文件不存在则为配置错误。

        Args:
            path: 配置文件路径

        Returns:
            Tuple[QueryConfig, Dict[str, Any]]: 目标配置和其他设置

        Raises:
            ConfigurationError: 文件不可读、YAML格式错误或数据类型错误
        """
        explicit = path is not None
        config_path = os.path.expanduser(os.path.expandvars(path or DEFAULT_CONFIG_PATH))

        if not os.path.exists(config_path):
            if explicit:
                raise ConfigurationError(f"config file not found: {config_path}")
            self.logger.debug(f"No config file found at {config_path}")
            return QueryConfig(), {}

        try:
            with open(config_path, encoding='utf-8') as config_file:
                data = yaml.safe_load(config_file)
        except OSError as e:
            raise ConfigurationError(f"unable to read config file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"error while parsing config {config_path}: {e}") from e

        self.logger.debug(f"已加载配置文件 {config_path}")
        return self.parse(data, source=config_path)

    def parse(self, data: Any, source: str = "<config>") -> Tuple[QueryConfig, Dict[str, Any]]:
        """
        验证并解析配置数据

        Args:
            data: YAML解析得到的数据
            source: 数据来源，用于错误信息

        Returns:
            Tuple[QueryConfig, Dict[str, Any]]: 目标配置和其他设置

        Raises:
            ConfigurationError: 数据类型错误
        """
        if data is None:
            return QueryConfig(), {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{source}: top level must be a mapping, got {type(data).__name__}")

        settings = self._parse_settings(data, source)
        queries = self.parse_queries(data.get('queries'), source)
        return queries, settings

    def parse_queries(self, queries: Any, source: str = "<config>") -> QueryConfig:
        """
        解析 queries 部分：字符串为目标文件，列表为域名列表

        Args:
            queries: 环境名 -> 文件路径或域名列表

        Returns:
            QueryConfig: 目标配置

        Raises:
            ConfigurationError: 不支持的数据类型
        """
        config = QueryConfig()
        if queries is None:
            return config
        if not isinstance(queries, dict):
            raise ConfigurationError(
                f"{source}: unsupported data type in queries option: {queries!r} is of type {type(queries).__name__}"
            )

        for env, target in queries.items():
            env = str(env)
            if isinstance(target, str):
                config.file_targets[env] = os.path.expanduser(target)
            elif isinstance(target, list):
                config.domain_targets[env] = self._parse_domain_list(env, target, source)
            else:
                raise ConfigurationError(
                    f"{source}: unsupported data type in queries option for {env}: "
                    f"{target!r} is of type {type(target).__name__}"
                )
            config.environment_order.append(env)

        self.logger.debug(f"fileTargets is  : {config.file_targets}")
        self.logger.debug(f"domainTargets is: {config.domain_targets}")
        return config

    def _parse_domain_list(self, env: str, domains: List[Any], source: str) -> List[str]:
        parsed = []
        for domain in domains:
            if not isinstance(domain, str):
                raise ConfigurationError(
                    f"{source}: unsupported data type in query option for {env}: "
                    f"{domain!r} is of type {type(domain).__name__}"
                )
            parsed.append(domain.strip())
        return parsed

    def _parse_settings(self, data: Dict[str, Any], source: str) -> Dict[str, Any]:
        settings = {}
        for key, expected in self.setting_types.items():
            if key not in data or data[key] is None:
                continue
            value = data[key]
            # bool 是 int 的子类，需单独排除
            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise ConfigurationError(
                    f"{source}: option {key} must be of type {expected.__name__}, got {type(value).__name__}"
                )
            settings[key] = value

        unknown = set(data) - set(self.setting_types) - {'queries'}
        if unknown:
            self.logger.warning(f"忽略未知的配置项: {', '.join(sorted(map(str, unknown)))}")
        return settings


def parse_target_option(value: str, list_value: bool = False) -> Tuple[str, Any]:
    """
    解析命令行中的 ENV=VALUE 形式的目标

    Args:
        value: 命令行参数
        list_value: VALUE 是否为逗号分隔的域名列表

    Returns:
        Tuple[str, Any]: 环境名和文件路径（或域名列表）

    Raises:
        ConfigurationError: 格式错误
    """
    env, sep, target = value.partition('=')
    env, target = env.strip(), target.strip()
    if not sep or not env or not target:
        raise ConfigurationError(f"invalid target option {value!r}, expected ENV=VALUE")

    if list_value:
        return env, [domain.strip() for domain in target.split(',') if domain.strip()]
    return env, os.path.expanduser(target)
