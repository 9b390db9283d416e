"""
目标解析服务
"""
import re
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..exceptions import ConfigurationError
from ..interfaces import TargetResolverInterface
from ..models import DEFAULT_PORT, ProbeRequest


_IPV6_TARGET = re.compile(r'^\[(?P<host>[0-9A-Fa-f:.%\w]+)\](?::(?P<port>[^:]*))?$')


def split_host_port(target: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    拆分 host[:port] 形式的目标

    Args:
        target: 目标字符串，IPv6 地址需写成 [addr]:port
        default_port: 未指定端口时使用的端口

    Returns:
        Tuple[str, int]: 主机名和端口

    Raises:
        ValueError: 目标格式错误
    """
    target = target.strip()
    if not target or any(ch.isspace() for ch in target):
        raise ValueError(f"invalid target {target!r}")

    match = _IPV6_TARGET.match(target)
    if match:
        host, port = match.group('host'), match.group('port')
    elif target.count(':') == 1:
        host, port = target.split(':')
    elif ':' in target:
        # 未加括号的 IPv6 地址，整体视为主机
        host, port = target, None
    else:
        host, port = target, None

    if not host:
        raise ValueError(f"missing host in target {target!r}")

    if port is None:
        return host, default_port
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"invalid port in target {target!r}")
    return host, int(port)


class TargetResolver(TargetResolverInterface):
    """目标解析器实现"""

    def __init__(self, default_port: int = DEFAULT_PORT):
        """
        初始化目标解析器

        Args:
            default_port: 用于校验目标的默认端口
        """
        self.default_port = default_port
        self.logger = logging.getLogger(__name__)

    def resolve(self, file_targets: Dict[str, str], domain_targets: Dict[str, List[str]],
                env_filter: Optional[Iterable[str]] = None,
                environment_order: Optional[List[str]] = None) -> List[ProbeRequest]:
        """
        将文件目标和域名目标展开为有序的探测请求列表

        环境按配置中首次出现的顺序排列，文件目标保持文件行序，
        域名目标保持列表顺序。重复目标不去重。

        Args:
            file_targets: 环境名 -> 目标文件路径
            domain_targets: 环境名 -> 主机名列表
            env_filter: 只保留这些环境，为空时不过滤
            environment_order: 配置中环境首次出现的顺序

        Returns:
            List[ProbeRequest]: 探测请求列表

        Raises:
            ConfigurationError: 文件不可读或目标格式错误
        """
        wanted = {env for env in (env_filter or []) if env}

        requests = []
        for environment in self._ordered_environments(file_targets, domain_targets, environment_order):
            if wanted and environment not in wanted:
                self.logger.debug(f"跳过环境 {environment}（不在过滤列表中）")
                continue

            hostnames = []
            if environment in file_targets:
                hostnames.extend(self.read_target_file(file_targets[environment]))
            if environment in domain_targets:
                hostnames.extend(str(entry).strip() for entry in domain_targets[environment])

            for hostname in hostnames:
                self._validate_target(environment, hostname)
                requests.append(ProbeRequest(environment=environment, hostname=hostname))

        self.logger.debug(f"解析得到 {len(requests)} 个探测请求")
        return requests

    def read_target_file(self, path: str) -> List[str]:
        """
        读取目标文件，每行一个 host[:port]，跳过空行

        Args:
            path: 文件路径

        Returns:
            List[str]: 主机名列表

        Raises:
            ConfigurationError: 文件不存在或不可读
        """
        try:
            with open(path, encoding='utf-8') as target_file:
                lines = target_file.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"unable to read target file {path}: {e}") from e

        return [line.strip() for line in lines if line.strip()]

    def _validate_target(self, environment: str, hostname: str):
        try:
            split_host_port(hostname, self.default_port)
        except ValueError as e:
            raise ConfigurationError(f"malformed target in environment {environment}: {e}") from e

    @staticmethod
    def _ordered_environments(file_targets: Dict[str, str], domain_targets: Dict[str, List[str]],
                              environment_order: Optional[List[str]]) -> List[str]:
        known = list(file_targets) + [env for env in domain_targets if env not in file_targets]
        if not environment_order:
            return known
        ordered = [env for env in environment_order if env in file_targets or env in domain_targets]
        return list(dict.fromkeys(ordered + known))
