"""
证书有效期分类服务
"""
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional

from ..models import DEFAULT_WARNING_DAYS, ProbeResult, Status


class ExpiryCalculator:
    """证书有效期计算器"""

    def __init__(self, warning_days: int = DEFAULT_WARNING_DAYS):
        """
        初始化有效期计算器

        Args:
            warning_days: 提前警告天数，默认30天
        """
        if warning_days < 0:
            raise ValueError(f"warning_days 不能为负数: {warning_days}")
        self.warning_days = warning_days

    @property
    def warning_horizon(self) -> timedelta:
        return timedelta(days=self.warning_days)

    def classify(self, not_before: datetime, not_after: datetime,
                 now: Optional[datetime] = None) -> Status:
        """
        根据有效期窗口对证书分类

        notAfter 恰好等于当前时间视为已过期。

        Args:
            not_before: 证书生效时间（UTC）
            not_after: 证书过期时间（UTC）
            now: 比较时间，默认为UTC当前时间

        Returns:
            Status: 分类结果
        """
        now = now or datetime.now(timezone.utc)

        if not_after <= now:
            return Status.EXPIRED
        if not_before > now:
            return Status.NOT_YET_VALID
        if not_after - now <= self.warning_horizon:
            return Status.EXPIRING_SOON
        return Status.VALID

    def calculate_days_until_expiry(self, expiry_date: datetime,
                                    now: Optional[datetime] = None) -> int:
        """
        计算距离过期的天数

        Args:
            expiry_date: 过期时间

        Returns:
            int: 剩余天数（负数表示已过期）
        """
        now = now or datetime.now(timezone.utc)
        return (expiry_date - now).days

    def categorize_results(self, results: List[ProbeResult]) -> Dict[Status, List[ProbeResult]]:
        """
        按状态对结果分组

        Args:
            results: 探测结果列表

        Returns:
            Dict[Status, List[ProbeResult]]: 每个状态对应的结果列表
        """
        categorized = {status: [] for status in Status}
        for result in results:
            categorized[result.status].append(result)
        return categorized

    def get_expiry_summary(self, results: List[ProbeResult]) -> str:
        """
        获取状态摘要

        Args:
            results: 探测结果列表

        Returns:
            str: 摘要信息
        """
        categorized = self.categorize_results(results)

        summary_parts = [f"总计: {len(results)} 个目标"]
        for status in Status:
            if categorized[status]:
                summary_parts.append(f"{status.value}: {len(categorized[status])} 个")

        return ", ".join(summary_parts)
