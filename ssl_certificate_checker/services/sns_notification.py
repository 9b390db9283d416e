"""
SNS通知服务
"""
import os
import time
from typing import Optional
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..interfaces import NotificationServiceInterface
from ..models import RunState
from .aggregator import format_report


# SNS Subject 最长100个字符
MAX_SUBJECT_LENGTH = 100


class SNSNotificationService(NotificationServiceInterface):
    """SNS通知服务实现：把最终报告发布到SNS主题"""

    def __init__(self, topic_arn: Optional[str] = None, region_name: Optional[str] = None):
        """
        初始化SNS通知服务

        Args:
            topic_arn: SNS主题ARN，如果为None则从环境变量读取
            region_name: AWS区域名称，如果为None则从ARN中提取
        """
        self.topic_arn = topic_arn or os.getenv('SNS_TOPIC_ARN')

        if region_name:
            self.region_name = region_name
        elif self.topic_arn and self.topic_arn.startswith('arn:aws:sns:'):
            # 从SNS ARN中提取区域
            self.region_name = self.topic_arn.split(':')[3]
        else:
            self.region_name = os.getenv('AWS_REGION', 'us-east-1')

        self.logger = logging.getLogger(__name__)
        self.sns_client = None

        if self.topic_arn:
            try:
                self.sns_client = boto3.client('sns', region_name=self.region_name)
                self.logger.debug(f"SNS客户端初始化成功，区域: {self.region_name}")
            except (BotoCoreError, ClientError) as e:
                self.logger.error(f"初始化SNS客户端失败: {str(e)}")

    @property
    def enabled(self) -> bool:
        return bool(self.topic_arn)

    def send_status_report(self, state: RunState, execution_summary: dict, requests=None) -> bool:
        """
        发送运行报告

        Args:
            state: 运行状态
            execution_summary: 执行摘要
            requests: 探测请求，用于确定环境顺序

        Returns:
            bool: 发送是否成功
        """
        if not self._validate_configuration():
            return False

        subject = self._format_subject(state)
        message = self.format_notification_content(state, execution_summary, requests)

        return self._publish_with_retry(subject, message)

    def format_notification_content(self, state: RunState, execution_summary: Optional[dict] = None,
                                    requests=None) -> str:
        """
        格式化通知内容

        Args:
            state: 运行状态
            execution_summary: 执行摘要
            requests: 探测请求，用于确定环境顺序

        Returns:
            str: 通知内容
        """
        if requests is None:
            requests = [result.request for result in state.results]

        lines = [format_report(state, requests), ""]
        if execution_summary:
            lines.append(f"Duration: {execution_summary.get('duration_seconds', 0):.2f}s")
        lines.append("This message was generated by ssl-checker.")
        return "\n".join(lines)

    def _format_subject(self, state: RunState) -> str:
        """
        格式化消息主题

        Args:
            state: 运行状态

        Returns:
            str: 消息主题
        """
        failed = len(state.failed)
        warnings = len(state.warnings)

        if failed > 0:
            subject = f"SSL check: {failed} failing of {state.total} targets"
        elif warnings > 0:
            subject = f"SSL check: {warnings} warnings of {state.total} targets"
        else:
            subject = f"SSL check: all {state.total} targets healthy"

        if state.interrupted:
            subject += " (interrupted)"
        return subject[:MAX_SUBJECT_LENGTH]

    def _publish_with_retry(self, subject: str, message: str, max_retries: int = 3) -> bool:
        """
        带重试机制的SNS消息发布，只重试限流类错误

        Args:
            subject: 消息主题
            message: 消息内容
            max_retries: 最大重试次数

        Returns:
            bool: 发送是否成功
        """
        for attempt in range(max_retries + 1):
            try:
                response = self.sns_client.publish(
                    TopicArn=self.topic_arn,
                    Subject=subject,
                    Message=message
                )
                self.logger.info(f"SNS通知发送成功，MessageId: {response.get('MessageId')}")
                return True

            except ClientError as e:
                error_code = e.response['Error']['Code']
                error_message = e.response['Error']['Message']

                if self._is_retryable_error(error_code) and attempt < max_retries:
                    wait_time = 2 ** attempt  # 指数退避
                    self.logger.warning(
                        f"SNS发送失败 (尝试 {attempt + 1}/{max_retries + 1}) - {error_code}: {error_message}，"
                        f"{wait_time}秒后重试"
                    )
                    time.sleep(wait_time)
                    continue

                self.logger.error(f"SNS发送失败 - {error_code}: {error_message}")
                return False

            except BotoCoreError as e:
                self.logger.error(f"发送SNS通知时发生错误: {str(e)}")
                return False

        return False

    def _is_retryable_error(self, error_code: str) -> bool:
        """
        判断错误是否可重试

        Args:
            error_code: AWS错误代码

        Returns:
            bool: 是否可重试
        """
        retryable_errors = {
            'Throttling',
            'ServiceUnavailable',
            'InternalError',
            'RequestTimeout'
        }
        return error_code in retryable_errors

    def _validate_configuration(self) -> bool:
        """
        验证配置是否正确

        Returns:
            bool: 配置是否有效
        """
        if not self.topic_arn:
            self.logger.error("SNS主题ARN未配置")
            return False

        if not self.sns_client:
            self.logger.error("SNS客户端未初始化")
            return False

        return True

