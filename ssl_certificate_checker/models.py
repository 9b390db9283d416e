"""
数据模型定义
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


DEFAULT_TIMEOUT = 10
DEFAULT_WARNING_DAYS = 30
DEFAULT_PORT = 443
DEFAULT_MAX_WORKERS = 50
DEFAULT_LOG_FILE = "./ssl-checker.log"


class Status(Enum):
    """探测结果状态（封闭集合）"""
    VALID = "Valid"
    EXPIRING_SOON = "ExpiringSoon"
    EXPIRED = "Expired"
    NOT_YET_VALID = "NotYetValid"
    CONNECTION_ERROR = "ConnectionError"
    TIMEOUT = "Timeout"

    @property
    def is_failure(self) -> bool:
        """该状态是否导致运行失败"""
        return self in FAILURE_STATUSES

    @property
    def is_warning(self) -> bool:
        return self in WARNING_STATUSES


FAILURE_STATUSES = frozenset({Status.EXPIRED, Status.CONNECTION_ERROR, Status.TIMEOUT})
WARNING_STATUSES = frozenset({Status.EXPIRING_SOON, Status.NOT_YET_VALID})


@dataclass(frozen=True)
class ProbeRequest:
    """单个探测请求"""
    environment: str
    hostname: str

    @property
    def key(self) -> tuple:
        return (self.environment, self.hostname)


@dataclass(frozen=True)
class ProbeResult:
    """单个探测结果，每个请求恰好产生一个"""
    request: ProbeRequest
    status: Status
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    error_detail: Optional[str] = None
    subject: Optional[str] = None
    issuer: Optional[str] = None

    @property
    def environment(self) -> str:
        return self.request.environment

    @property
    def hostname(self) -> str:
        return self.request.hostname

    def days_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        """
        计算距离过期的天数

        Args:
            now: 当前时间，默认为UTC当前时间

        Returns:
            Optional[int]: 剩余天数（负数表示已过期），没有证书时为None
        """
        if self.not_after is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (self.not_after - now).days


@dataclass
class RunState:
    """一次运行的聚合状态，仅由单一消费者修改"""
    total: int
    completed: int = 0
    results: List[ProbeResult] = field(default_factory=list)
    interrupted: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.completed == self.total

    def status_counts(self) -> Dict[Status, int]:
        counts = {status: 0 for status in Status}
        for result in self.results:
            counts[result.status] += 1
        return counts

    @property
    def failed(self) -> List[ProbeResult]:
        return [result for result in self.results if result.status.is_failure]

    @property
    def warnings(self) -> List[ProbeResult]:
        return [result for result in self.results if result.status.is_warning]

    @property
    def passed(self) -> List[ProbeResult]:
        return [result for result in self.results if result.status is Status.VALID]


@dataclass
class QueryConfig:
    """解析后的目标配置"""
    file_targets: Dict[str, str] = field(default_factory=dict)
    domain_targets: Dict[str, List[str]] = field(default_factory=dict)
    environment_order: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.file_targets and not self.domain_targets


@dataclass
class CheckSettings:
    """运行配置，启动时构建一次并显式传入核心"""
    timeout: int = DEFAULT_TIMEOUT
    silent: bool = False
    warning_days: int = DEFAULT_WARNING_DAYS
    default_port: int = DEFAULT_PORT
    max_workers: int = DEFAULT_MAX_WORKERS
    verify: bool = True
    debug: bool = False
    log_file: str = DEFAULT_LOG_FILE
    environments: Optional[List[str]] = None
    sns_topic_arn: Optional[str] = None
    report_json: Optional[str] = None
