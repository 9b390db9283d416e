"""
SNS通知服务测试
"""
import os
from unittest.mock import patch, MagicMock

import boto3
from botocore.exceptions import ClientError
from moto import mock_aws

from ssl_certificate_checker.models import ProbeRequest, ProbeResult, RunState, Status
from ssl_certificate_checker.services.sns_notification import SNSNotificationService


def make_state(*statuses, total=None, interrupted=False):
    results = [ProbeResult(ProbeRequest("prod", f"host{i}.example.com"), status)
               for i, status in enumerate(statuses)]
    return RunState(
        total=len(results) if total is None else total,
        completed=len(results),
        results=results,
        interrupted=interrupted
    )


class TestSNSNotificationService:
    """SNS通知服务测试类"""

    def setup_method(self):
        """测试前准备"""
        self.topic_arn = "arn:aws:sns:eu-west-1:123456789012:ssl-alerts"

    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_init_with_topic_arn(self, mock_boto3):
        """测试使用指定topic_arn初始化，区域从ARN中提取"""
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client

        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service.enabled
        assert service.sns_client == mock_client
        mock_boto3.client.assert_called_once_with('sns', region_name='eu-west-1')

    @patch.dict(os.environ, {'SNS_TOPIC_ARN': 'arn:aws:sns:us-east-1:123456789012:env-topic'})
    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_init_from_env(self, mock_boto3):
        """测试从环境变量读取主题"""
        service = SNSNotificationService()

        assert service.topic_arn == 'arn:aws:sns:us-east-1:123456789012:env-topic'
        assert service.region_name == 'us-east-1'

    @patch.dict(os.environ, {}, clear=True)
    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_disabled_without_topic(self, mock_boto3):
        """测试未配置主题时不创建客户端"""
        service = SNSNotificationService()

        assert not service.enabled
        assert service.sns_client is None
        mock_boto3.client.assert_not_called()
        assert service.send_status_report(make_state(Status.VALID), {}) is False

    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_format_subject(self, mock_boto3):
        """测试消息主题"""
        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service._format_subject(make_state(Status.VALID, Status.VALID)) == \
            "SSL check: all 2 targets healthy"
        assert service._format_subject(make_state(Status.VALID, Status.EXPIRING_SOON)) == \
            "SSL check: 1 warnings of 2 targets"
        assert service._format_subject(make_state(Status.EXPIRED, Status.EXPIRING_SOON)) == \
            "SSL check: 1 failing of 2 targets"
        assert service._format_subject(make_state(Status.VALID, total=3, interrupted=True)) == \
            "SSL check: all 3 targets healthy (interrupted)"

    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_format_notification_content(self, mock_boto3):
        """测试通知内容包含最终报告"""
        service = SNSNotificationService(topic_arn=self.topic_arn)
        state = make_state(Status.TIMEOUT)

        content = service.format_notification_content(state, {'duration_seconds': 1.5})

        assert "SSL certificate check report" in content
        assert "Timeout (1):" in content
        assert "Duration: 1.50s" in content

    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_send_status_report_success(self, mock_boto3):
        """测试发送成功"""
        mock_client = MagicMock()
        mock_client.publish.return_value = {'MessageId': 'test-message-id'}
        mock_boto3.client.return_value = mock_client
        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service.send_status_report(make_state(Status.EXPIRED), {'duration_seconds': 0.2}) is True

        kwargs = mock_client.publish.call_args[1]
        assert kwargs['TopicArn'] == self.topic_arn
        assert kwargs['Subject'] == "SSL check: 1 failing of 1 targets"

    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_send_status_report_client_error(self, mock_boto3):
        """测试不可重试的错误"""
        mock_client = MagicMock()
        mock_client.publish.side_effect = ClientError(
            {'Error': {'Code': 'AuthorizationError', 'Message': 'not allowed'}}, 'Publish'
        )
        mock_boto3.client.return_value = mock_client
        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service.send_status_report(make_state(Status.VALID), {}) is False
        assert mock_client.publish.call_count == 1

    @patch('ssl_certificate_checker.services.sns_notification.time.sleep')
    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_publish_with_retry_success_after_retry(self, mock_boto3, mock_sleep):
        """测试限流后重试成功"""
        mock_client = MagicMock()
        mock_client.publish.side_effect = [
            ClientError({'Error': {'Code': 'Throttling', 'Message': 'slow down'}}, 'Publish'),
            {'MessageId': 'test-message-id'}
        ]
        mock_boto3.client.return_value = mock_client
        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service._publish_with_retry("subject", "message") is True
        assert mock_client.publish.call_count == 2
        mock_sleep.assert_called_once_with(1)

    @patch('ssl_certificate_checker.services.sns_notification.time.sleep')
    @patch('ssl_certificate_checker.services.sns_notification.boto3')
    def test_publish_with_retry_max_retries_exceeded(self, mock_boto3, mock_sleep):
        """测试超过最大重试次数"""
        mock_client = MagicMock()
        mock_client.publish.side_effect = ClientError(
            {'Error': {'Code': 'ServiceUnavailable', 'Message': 'down'}}, 'Publish'
        )
        mock_boto3.client.return_value = mock_client
        service = SNSNotificationService(topic_arn=self.topic_arn)

        assert service._publish_with_retry("subject", "message", max_retries=2) is False
        assert mock_client.publish.call_count == 3
        assert mock_sleep.call_count == 2

    def test_is_retryable_error(self):
        """测试可重试错误判断"""
        service = SNSNotificationService()

        assert service._is_retryable_error('Throttling')
        assert service._is_retryable_error('InternalError')
        assert not service._is_retryable_error('InvalidParameter')

    @patch.dict(os.environ, {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
    })
    @mock_aws
    def test_send_status_report_to_mocked_topic(self):
        """测试向模拟的SNS主题发布报告"""
        topic_arn = boto3.client('sns', region_name='eu-west-1').create_topic(Name='ssl-alerts')['TopicArn']
        service = SNSNotificationService(topic_arn=topic_arn)
        state = make_state(Status.VALID, Status.CONNECTION_ERROR)

        assert service.send_status_report(state, {'duration_seconds': 0.5}) is True
