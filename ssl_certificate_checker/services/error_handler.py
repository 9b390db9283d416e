"""
错误处理服务
"""
import socket
import ssl
from typing import Any, Dict, List
from datetime import datetime, timezone
import logging

from ..models import ProbeResult, Status


class ProbeErrorHandler:
    """探测错误处理器：把网络异常转换为简短的诊断信息，不做重试"""

    def __init__(self):
        """初始化探测错误处理器"""
        self.logger = logging.getLogger(__name__)

    def is_timeout(self, error: Exception) -> bool:
        """
        判断错误是否为超时

        Args:
            error: 异常对象

        Returns:
            bool: 是否超时
        """
        if isinstance(error, (socket.timeout, TimeoutError)):
            return True
        # 握手阶段的超时有时以 SSLError 的形式出现
        return isinstance(error, ssl.SSLError) and 'timed out' in str(error).lower()

    def describe(self, error: Exception) -> str:
        """
        生成单行、可读的诊断信息

        Args:
            error: 异常对象

        Returns:
            str: 诊断信息
        """
        if isinstance(error, socket.gaierror):
            return f"DNS resolution failed: {error.strerror or error}"
        if isinstance(error, ssl.SSLCertVerificationError):
            reason = getattr(error, 'verify_message', None) or getattr(error, 'reason', None)
            return f"certificate verify failed: {reason or error}"
        if isinstance(error, ssl.SSLError):
            return f"TLS handshake failed: {getattr(error, 'reason', None) or error}"
        if isinstance(error, ConnectionRefusedError):
            return "connection refused"
        if isinstance(error, ConnectionResetError):
            return "connection reset by peer"
        if isinstance(error, OSError) and error.strerror:
            return error.strerror

        message = str(error).strip().splitlines()
        return message[0] if message else type(error).__name__

    def handle_probe_error(self, target: str, error: Exception) -> Dict[str, Any]:
        """
        处理探测错误

        Args:
            target: 探测目标
            error: 异常对象

        Returns:
            Dict[str, Any]: 错误处理结果
        """
        error_info = {
            'target': target,
            'error_type': type(error).__name__,
            'error_message': self.describe(error),
            'is_timeout': self.is_timeout(error),
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'suggested_action': self._get_suggested_action(error)
        }

        self.logger.debug(
            f"目标 {target} 探测失败: {error_info['error_type']}: {error_info['error_message']}"
            f"（建议: {error_info['suggested_action']}）"
        )

        return error_info

    def _get_suggested_action(self, error: Exception) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象

        Returns:
            str: 建议的处理方案
        """
        error_message = str(error).lower()

        if self.is_timeout(error):
            return "检查网络连接，考虑增加超时时间"
        elif isinstance(error, socket.gaierror):
            return "检查域名是否正确，DNS服务器是否可用"
        elif isinstance(error, ConnectionRefusedError):
            return "检查目标服务器是否运行，端口是否正确"
        elif isinstance(error, ssl.SSLCertVerificationError):
            return "证书验证失败，可能是自签名证书、证书链不完整或主机名不匹配"
        elif isinstance(error, ssl.SSLError):
            if 'handshake failure' in error_message:
                return "SSL握手失败，检查SSL/TLS版本兼容性"
            return "SSL连接问题，检查服务器SSL配置"
        elif 'network is unreachable' in error_message:
            return "网络不可达，检查网络连接和路由"
        elif 'no route to host' in error_message:
            return "无法路由到主机，检查防火墙和网络配置"
        else:
            return "检查网络连接和服务器状态"

    def get_error_statistics(self, results: List[ProbeResult]) -> Dict[str, Any]:
        """
        获取错误统计信息

        Args:
            results: 探测结果列表

        Returns:
            Dict[str, Any]: 错误统计
        """
        errors = [result for result in results
                  if result.status in (Status.CONNECTION_ERROR, Status.TIMEOUT)]
        if not errors:
            return {
                'total_errors': 0,
                'timeouts': 0,
                'connection_errors': 0,
                'error_details': {},
                'most_common_error': None
            }

        error_details = {}
        for result in errors:
            detail = result.error_detail or result.status.value
            error_details[detail] = error_details.get(detail, 0) + 1

        most_common_error = max(error_details.items(), key=lambda x: x[1])

        return {
            'total_errors': len(errors),
            'timeouts': len([r for r in errors if r.status is Status.TIMEOUT]),
            'connection_errors': len([r for r in errors if r.status is Status.CONNECTION_ERROR]),
            'error_details': error_details,
            'most_common_error': most_common_error[0],
            'most_common_error_count': most_common_error[1]
        }
