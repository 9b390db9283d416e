"""
服务接口定义
"""
from abc import ABC, abstractmethod
import threading
from typing import Dict, Iterable, List, Optional

from .models import ProbeRequest, ProbeResult, RunState


class TargetResolverInterface(ABC):
    """目标解析器接口"""

    @abstractmethod
    def resolve(self, file_targets: Dict[str, str], domain_targets: Dict[str, List[str]],
                env_filter: Optional[Iterable[str]] = None,
                environment_order: Optional[List[str]] = None) -> List[ProbeRequest]:
        """将配置展开为有序的探测请求列表"""
        pass


class ProberInterface(ABC):
    """证书探测器接口"""

    @abstractmethod
    def probe(self, request: ProbeRequest,
              cancel_event: Optional[threading.Event] = None) -> ProbeResult:
        """探测单个目标的TLS证书"""
        pass

    @abstractmethod
    def abort(self):
        """放弃所有进行中的连接"""
        pass


class PresenterInterface(ABC):
    """结果展示接口"""

    @abstractmethod
    def start(self, requests: List[ProbeRequest], state: RunState):
        """运行开始"""
        pass

    @abstractmethod
    def update(self, state: RunState, result: ProbeResult):
        """收到一个完成结果"""
        pass

    @abstractmethod
    def finish(self, state: RunState):
        """运行结束（完成或被取消）"""
        pass


class NotificationServiceInterface(ABC):
    """通知服务接口"""

    @abstractmethod
    def send_status_report(self, state: RunState, execution_summary: dict, requests=None) -> bool:
        """发送运行报告"""
        pass

    @abstractmethod
    def format_notification_content(self, state: RunState) -> str:
        """格式化通知内容"""
        pass


class LoggerServiceInterface(ABC):
    """日志服务接口"""

    @abstractmethod
    def log_check_start(self, target_count: int):
        """记录检查开始"""
        pass

    @abstractmethod
    def log_probe_result(self, result: ProbeResult):
        """记录单个探测结果"""
        pass

    @abstractmethod
    def log_error(self, target: str, error: Exception):
        """记录错误信息"""
        pass
