"""
日志服务
"""
import os
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from rich.console import Console
from rich.logging import RichHandler

from ..interfaces import LoggerServiceInterface
from ..models import DEFAULT_LOG_FILE, ProbeResult, Status


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class LoggerService(LoggerServiceInterface):
    """日志服务实现"""

    def __init__(self, logger_name: str = "ssl_certificate_checker", log_level: Optional[str] = None,
                 log_file: Optional[str] = DEFAULT_LOG_FILE, debug: bool = False,
                 console: Optional[Console] = None):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量读取
            log_file: 日志文件路径，为None时不写文件
            debug: 调试模式，文件和控制台都输出DEBUG级别
            console: 控制台日志输出，默认为标准错误；实时表格运行期间 rich 会把标准错误
                的输出排到表格上方
        """
        self.logger_name = logger_name
        self.debug = debug
        self.log_level = 'DEBUG' if debug else (log_level or os.getenv('LOG_LEVEL', 'INFO'))
        self.log_file = log_file
        self.console = console or Console(stderr=True)

        self.logger = logging.getLogger(logger_name)
        self._handlers: List[logging.Handler] = []
        self._configure_logger()

        self.execution_stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'start_time': None,
            'end_time': None,
            'total_targets': 0,
            'successful_checks': 0,
            'failed_checks': 0,
            'warnings': 0,
            'errors': []
        }

    def _configure_logger(self):
        """配置日志器：文件记录全部事件，控制台只显示警告及以上"""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        self.logger.setLevel(level)

        # 替换之前由日志服务添加的处理器
        for handler in list(self.logger.handlers):
            if getattr(handler, '_ssl_checker_owned', False):
                self.logger.removeHandler(handler)
                handler.close()

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        if self.log_file:
            file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self._add_handler(file_handler)

        console_handler = RichHandler(console=self.console, show_path=False)
        console_handler.setLevel(logging.DEBUG if self.debug else logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        self._add_handler(console_handler)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    def _add_handler(self, handler: logging.Handler):
        handler._ssl_checker_owned = True
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def close(self):
        """关闭日志服务添加的处理器"""
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers = []

    def log_check_start(self, target_count: int):
        """
        记录检查开始

        Args:
            target_count: 要检查的目标数量
        """
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['total_targets'] = target_count

        self.logger.info(f"开始SSL证书检查，共 {target_count} 个目标")
        self.logger.info(f"检查开始时间: {self.execution_stats['start_time'].isoformat()}")

    def log_probe_result(self, result: ProbeResult):
        """
        记录单个探测结果

        Args:
            result: 探测结果
        """
        target = f"{result.environment}/{result.hostname}"

        if result.status in (Status.CONNECTION_ERROR, Status.TIMEOUT):
            self.execution_stats['failed_checks'] += 1
            self.logger.error(
                f"证书检查失败 - 目标: {target}, 状态: {result.status.value}, "
                f"错误: {result.error_detail}"
            )
            return

        self.execution_stats['successful_checks'] += 1
        expiry = result.not_after.isoformat() if result.not_after else "unknown"

        if result.status is Status.EXPIRED:
            self.logger.warning(
                f"证书已过期 - 目标: {target}, 过期时间: {expiry}, 颁发者: {result.issuer}"
            )
        elif result.status in (Status.EXPIRING_SOON, Status.NOT_YET_VALID):
            self.execution_stats['warnings'] += 1
            self.logger.info(
                f"证书需要关注 - 目标: {target}, 状态: {result.status.value}, "
                f"过期时间: {expiry}, 剩余天数: {result.days_until_expiry()} 天"
            )
        else:
            self.logger.debug(
                f"证书正常 - 目标: {target}, 过期时间: {expiry}, "
                f"剩余天数: {result.days_until_expiry()} 天, 颁发者: {result.issuer}"
            )

    def log_error(self, target: str, error: Exception):
        """
        记录错误信息

        Args:
            target: 目标或阶段名称
            error: 异常对象
        """
        error_info = {
            'target': target,
            'error_type': type(error).__name__,
            'error_message': str(error),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

        self.execution_stats['errors'].append(error_info)

        self.logger.error(f"{target} 发生错误: {type(error).__name__}: {str(error)}")

        # 记录详细的堆栈跟踪（调试级别）
        self.logger.debug(f"{target} 错误堆栈跟踪:\n{traceback.format_exc()}")

    def log_check_end(self, interrupted: bool = False):
        """记录检查结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)

        if self.execution_stats['start_time']:
            duration = (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()
        else:
            duration = 0

        if interrupted:
            self.logger.warning("SSL证书检查被中断，只输出部分结果")
        else:
            self.logger.info("SSL证书检查完成")
        self.logger.info(f"总执行时间: {duration:.2f} 秒")

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        safe_config = self._sanitize_config(config)

        self.logger.debug("运行配置:")
        for key, value in safe_config.items():
            self.logger.debug(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()
            is_sensitive = (
                key_lower.endswith('_arn') or
                key_lower.endswith('_key') or
                key_lower.endswith('_secret') or
                key_lower.endswith('_token')
            )

            if is_sensitive and isinstance(value, str) and value:
                parts = value.split(':')
                if value.startswith('arn:') and len(parts) >= 6:
                    # ARN类型，隐藏账号
                    safe_config[key] = f"{':'.join(parts[:4])}:***:{parts[-1]}"
                else:
                    safe_config[key] = value[:3] + "***" if len(value) > 3 else "***"
            else:
                safe_config[key] = value

        return safe_config

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        stats = self.execution_stats
        duration = 0
        if stats['start_time'] and stats['end_time']:
            duration = (stats['end_time'] - stats['start_time']).total_seconds()

        checked = stats['successful_checks'] + stats['failed_checks']
        return {
            'start_time': stats['start_time'].isoformat() if stats['start_time'] else None,
            'end_time': stats['end_time'].isoformat() if stats['end_time'] else None,
            'duration_seconds': duration,
            'total_targets': stats['total_targets'],
            'successful_checks': stats['successful_checks'],
            'failed_checks': stats['failed_checks'],
            'warnings': stats['warnings'],
            'success_rate': stats['successful_checks'] / checked if checked > 0 else 0,
            'error_count': len(stats['errors']),
            'errors': stats['errors']
        }

    def log_execution_summary(self):
        """记录执行摘要"""
        summary = self.get_execution_summary()

        self.logger.info("=" * 50)
        self.logger.info("执行摘要")
        self.logger.info("=" * 50)
        self.logger.info(f"执行时长: {summary['duration_seconds']:.2f} 秒")
        self.logger.info(f"总目标数: {summary['total_targets']}")
        self.logger.info(f"成功检查: {summary['successful_checks']}")
        self.logger.info(f"失败检查: {summary['failed_checks']}")
        self.logger.info(f"成功率: {summary['success_rate']:.1%}")

        if summary['errors']:
            self.logger.info(f"错误数量: {summary['error_count']}")
            for i, error in enumerate(summary['errors'][:5], 1):
                self.logger.info(f"  错误 {i}: {error['target']} - {error['error_type']}: {error['error_message']}")

        self.logger.info("=" * 50)

