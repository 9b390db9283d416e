"""
检查运行入口
"""
import json
from typing import List, Optional

from rich.console import Console

from .exceptions import ConfigurationError
from .interfaces import PresenterInterface, ProberInterface
from .models import CheckSettings, ProbeRequest, ProbeResult, QueryConfig
from .services.aggregator import EXIT_CONFIG_ERROR, EXIT_NOTHING_TO_DO, ResultAggregator
from .services.error_handler import ProbeErrorHandler
from .services.expiry_calculator import ExpiryCalculator
from .services.logger import LoggerService
from .services.presenter import LivePresenter, SilentPresenter
from .services.scheduler import ProbeScheduler
from .services.sns_notification import SNSNotificationService
from .services.ssl_checker import SSLCertificateChecker
from .services.target_resolver import TargetResolver


class SSLCertificateMonitor:
    """SSL证书检查主类：解析目标、调度探测、聚合并展示结果"""

    def __init__(self, settings: CheckSettings,
                 logger_service: Optional[LoggerService] = None,
                 prober: Optional[ProberInterface] = None,
                 presenter: Optional[PresenterInterface] = None,
                 notification_service: Optional[SNSNotificationService] = None,
                 console: Optional[Console] = None):
        """
        初始化检查器

        Args:
            settings: 运行配置
            logger_service: 日志服务
            prober: 证书探测器，默认按配置创建
            presenter: 结果展示，默认按 silent 选择
            notification_service: SNS通知服务，配置了主题ARN时默认创建
            console: 终端输出控制台
        """
        self.settings = settings
        self.console = console or Console(highlight=False)
        self.logger_service = logger_service or LoggerService(
            log_file=settings.log_file, debug=settings.debug
        )
        self.logger = self.logger_service.logger

        self.resolver = TargetResolver(default_port=settings.default_port)
        self.prober = prober or SSLCertificateChecker(
            timeout=settings.timeout,
            port=settings.default_port,
            warning_days=settings.warning_days,
            verify=settings.verify
        )
        self.presenter = presenter or self._default_presenter()
        self.notification_service = notification_service
        if self.notification_service is None and settings.sns_topic_arn:
            self.notification_service = SNSNotificationService(topic_arn=settings.sns_topic_arn)

        self.error_handler = ProbeErrorHandler()
        self.expiry_calculator = ExpiryCalculator(warning_days=settings.warning_days)
        self.scheduler: Optional[ProbeScheduler] = None
        self.aggregator: Optional[ResultAggregator] = None

        self._log_configuration()

    def _default_presenter(self) -> PresenterInterface:
        if self.settings.silent:
            return SilentPresenter(console=self.console)
        return LivePresenter(console=self.console)

    def _log_configuration(self):
        """记录运行配置"""
        self.logger_service.log_configuration_info({
            'timeout': self.settings.timeout,
            'silent': self.settings.silent,
            'warning_days': self.settings.warning_days,
            'default_port': self.settings.default_port,
            'max_workers': self.settings.max_workers,
            'verify': self.settings.verify,
            'environments': self.settings.environments,
            'sns_topic_arn': self.settings.sns_topic_arn or '',
        })

    def execute(self, query: QueryConfig) -> int:
        """
        执行SSL证书检查

        Args:
            query: 目标配置

        Returns:
            int: 进程退出码
        """
        try:
            requests = self.resolver.resolve(
                query.file_targets,
                query.domain_targets,
                env_filter=self.settings.environments,
                environment_order=query.environment_order
            )
        except ConfigurationError as e:
            self.logger_service.log_error("配置", e)
            self.console.print(f"Configuration error: {e}", markup=False, soft_wrap=True)
            return EXIT_CONFIG_ERROR

        if not requests:
            self.logger.info("Empty query... nothing to do")
            self.console.print("Nothing to do: no targets selected.")
            return EXIT_NOTHING_TO_DO

        return self.run(requests)

    def run(self, requests: List[ProbeRequest]) -> int:
        """
        并发探测并实时展示结果

        Args:
            requests: 探测请求列表

        Returns:
            int: 进程退出码
        """
        self.aggregator = ResultAggregator(requests)
        self.scheduler = ProbeScheduler(self.prober, max_workers=self.settings.max_workers)

        self.aggregator.start()
        self.logger_service.log_check_start(len(requests))
        self._present('start', requests, self.aggregator.state)

        interrupted = False
        try:
            for result in self.scheduler.run(requests):
                self._record(result)
        except KeyboardInterrupt:
            interrupted = True
            self.scheduler.cancel()
            for result in self.scheduler.drain():
                self._record(result)

        interrupted = interrupted or self.scheduler.cancelled
        self.aggregator.finish(interrupted=interrupted)
        self.logger_service.log_check_end(interrupted=self.aggregator.state.interrupted)
        self._present('finish', self.aggregator.state)

        self._log_results_summary()
        self._write_json_report()
        self._send_notification(requests)

        return self.aggregator.exit_code()

    def _record(self, result: ProbeResult):
        self.aggregator.record(result)
        self.logger_service.log_probe_result(result)
        self._present('update', self.aggregator.state, result)

    def _present(self, method: str, *args):
        """
        调用展示方法，展示失败时降级为静默模式的最终报告
        """
        try:
            getattr(self.presenter, method)(*args)
        except Exception as e:
            if isinstance(self.presenter, SilentPresenter):
                raise
            self.logger_service.log_error("展示", e)
            self.logger.warning("实时展示失败，改为运行结束后输出最终报告")
            self.presenter = SilentPresenter(console=self.console)
            self.presenter.start(self.aggregator.requests, self.aggregator.state)
            if method == 'finish':
                self.presenter.finish(self.aggregator.state)

    def _log_results_summary(self):
        results = self.aggregator.state.results
        self.logger.info(self.expiry_calculator.get_expiry_summary(results))

        statistics = self.error_handler.get_error_statistics(results)
        if statistics['total_errors']:
            self.logger.info(
                f"错误统计: 超时 {statistics['timeouts']} 个, 连接错误 {statistics['connection_errors']} 个, "
                f"最常见: {statistics['most_common_error']} ({statistics['most_common_error_count']} 次)"
            )
        self.logger_service.log_execution_summary()

    def _write_json_report(self):
        if not self.settings.report_json:
            return

        try:
            with open(self.settings.report_json, 'w', encoding='utf-8') as report_file:
                json.dump(self.aggregator.build_summary(), report_file, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger_service.log_error("JSON报告", e)
            return
        self.logger.info(f"JSON报告已写入 {self.settings.report_json}")

    def _send_notification(self, requests: List[ProbeRequest]) -> bool:
        """
        发送SNS报告，失败不影响退出码

        Returns:
            bool: 是否发送成功
        """
        if self.notification_service is None or not self.notification_service.enabled:
            return False

        success = self.notification_service.send_status_report(
            self.aggregator.state,
            self.logger_service.get_execution_summary(),
            requests
        )
        if not success:
            self.logger.error("SSL证书状态报告发送失败")
        return success

