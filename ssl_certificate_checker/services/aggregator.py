"""
结果聚合服务
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..models import ProbeRequest, ProbeResult, RunState, Status


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_NOTHING_TO_DO = 3
EXIT_INTERRUPTED = 130


class ResultAggregator:
    """结果聚合器：RunState 的唯一写入者"""

    def __init__(self, requests: List[ProbeRequest]):
        """
        初始化结果聚合器

        Args:
            requests: 本次运行的全部探测请求
        """
        self.requests = list(requests)
        self.state = RunState(total=len(self.requests))

    def start(self):
        self.state.start_time = datetime.now(timezone.utc)

    def record(self, result: ProbeResult):
        """
        记录一个完成的结果

        Args:
            result: 探测结果

        Raises:
            RuntimeError: 结果数量超过请求数量
        """
        if self.state.completed >= self.state.total:
            raise RuntimeError(
                f"收到多余的结果 {result.environment}/{result.hostname}，"
                f"已完成 {self.state.completed}/{self.state.total}"
            )

        self.state.results.append(result)
        self.state.completed += 1

    def finish(self, interrupted: bool = False):
        self.state.interrupted = interrupted and not self.state.is_terminal
        self.state.end_time = datetime.now(timezone.utc)

    def exit_code(self) -> int:
        """
        计算进程退出码

        Expired、ConnectionError、Timeout 导致失败；ExpiringSoon 和
        NotYetValid 只作为警告。被中断的运行总是返回 130。

        Returns:
            int: 退出码
        """
        if self.state.interrupted:
            return EXIT_INTERRUPTED
        if self.state.failed:
            return EXIT_FAILED
        return EXIT_OK

    def ordered_results(self) -> List[ProbeResult]:
        """按请求顺序排列已完成的结果"""
        pending = {}
        for result in self.state.results:
            pending.setdefault(result.request.key, []).append(result)

        ordered = []
        for request in self.requests:
            matches = pending.get(request.key)
            if matches:
                ordered.append(matches.pop(0))
        return ordered

    def build_summary(self) -> Dict[str, Any]:
        """
        构建结构化的运行摘要

        Returns:
            Dict[str, Any]: 可序列化为JSON的摘要
        """
        state = self.state
        duration = 0.0
        if state.start_time and state.end_time:
            duration = (state.end_time - state.start_time).total_seconds()

        return {
            'total': state.total,
            'completed': state.completed,
            'interrupted': state.interrupted,
            'duration_seconds': duration,
            'status_counts': {status.value: count for status, count in state.status_counts().items()},
            'passed': len(state.passed),
            'warnings': len(state.warnings),
            'failed': len(state.failed),
            'exit_code': self.exit_code(),
            'results': [_result_to_dict(result) for result in self.ordered_results()],
            'timestamp': datetime.now(timezone.utc).isoformat()
        }


def _result_to_dict(result: ProbeResult) -> Dict[str, Any]:
    return {
        'environment': result.environment,
        'hostname': result.hostname,
        'status': result.status.value,
        'not_before': result.not_before.isoformat() if result.not_before else None,
        'not_after': result.not_after.isoformat() if result.not_after else None,
        'days_until_expiry': result.days_until_expiry(),
        'subject': result.subject,
        'issuer': result.issuer,
        'error_detail': result.error_detail
    }


def format_report(state: RunState, requests: List[ProbeRequest]) -> str:
    """
    格式化最终文本报告：按环境和状态分组，附带总体统计

    Args:
        state: 运行状态
        requests: 探测请求（决定环境顺序）

    Returns:
        str: 报告文本
    """
    environments = list(dict.fromkeys(request.environment for request in requests))
    by_environment = {env: [] for env in environments}
    for result in state.results:
        by_environment.setdefault(result.environment, []).append(result)

    lines = [
        "SSL certificate check report",
        "=" * 40,
        f"Checked: {state.completed}/{state.total}",
        ""
    ]

    for environment, results in by_environment.items():
        lines.append(f"[{environment}]")
        if not results:
            lines.append("  (no results)")
        for status in Status:
            matching = [result for result in results if result.status is status]
            if not matching:
                continue
            lines.append(f"  {status.value} ({len(matching)}):")
            for result in matching:
                lines.append(f"    - {_describe_result(result)}")
        lines.append("")

    missing = state.total - state.completed
    lines.extend([
        "-" * 40,
        f"Passed: {len(state.passed)}  Warnings: {len(state.warnings)}  Failed: {len(state.failed)}",
    ])
    if state.interrupted:
        lines.append(f"Interrupted: {missing} target(s) not checked")

    return "\n".join(lines)


def _describe_result(result: ProbeResult) -> str:
    parts = [result.hostname]
    if result.not_after is not None:
        days = result.days_until_expiry()
        parts.append(f"expires {result.not_after.strftime('%Y-%m-%d %H:%M:%S')} UTC ({days} days)")
    if result.issuer:
        parts.append(f"issuer {result.issuer}")
    if result.error_detail:
        parts.append(result.error_detail)
    return " | ".join(parts)
