"""
结果展示服务
"""
from typing import Dict, List, Optional

from rich import box
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from ..interfaces import PresenterInterface
from ..models import ProbeRequest, ProbeResult, RunState, Status
from .aggregator import format_report


STATUS_STYLES = {
    Status.VALID: "green",
    Status.EXPIRING_SOON: "yellow",
    Status.NOT_YET_VALID: "yellow",
    Status.EXPIRED: "bold red",
    Status.CONNECTION_ERROR: "red",
    Status.TIMEOUT: "magenta",
}


def _summary_line(state: RunState) -> Text:
    text = Text()
    text.append(f"Passed: {len(state.passed)}", style="green")
    text.append("  ")
    text.append(f"Warnings: {len(state.warnings)}", style="yellow")
    text.append("  ")
    text.append(f"Failed: {len(state.failed)}", style="red")
    if state.interrupted:
        text.append(f"  Interrupted: {state.total - state.completed} not checked", style="bold")
    return text


class LivePresenter(PresenterInterface):
    """
    交互模式：实时刷新的结果表格

    表格由 rich 的刷新线程按固定频率重绘，记录结果时不触发终端输出，
    终端再慢也不会阻塞结果的消费。
    """

    def __init__(self, console: Optional[Console] = None, refresh_per_second: float = 4.0):
        """
        初始化实时展示

        Args:
            console: 输出控制台
            refresh_per_second: 每秒重绘次数
        """
        self.console = console or Console()
        self.refresh_per_second = refresh_per_second
        self._requests: List[ProbeRequest] = []
        self._state: Optional[RunState] = None
        self._live: Optional[Live] = None

    def start(self, requests: List[ProbeRequest], state: RunState):
        self._requests = list(requests)
        self._state = state
        self._live = Live(
            console=self.console,
            refresh_per_second=self.refresh_per_second,
            get_renderable=self.render,
        )
        self._live.start()

    def update(self, state: RunState, result: ProbeResult):
        self._state = state

    def finish(self, state: RunState):
        self._state = state
        if self._live is not None:
            self._live.stop()
            self._live = None
        self.console.print(_summary_line(state))

    def render(self) -> Table:
        """
        根据当前状态生成表格，按环境分组，未完成的目标显示为 pending

        Returns:
            Table: 结果表格
        """
        state = self._state
        results = list(state.results) if state is not None else []
        completed = state.completed if state is not None else 0

        by_key: Dict[tuple, List[ProbeResult]] = {}
        for result in results:
            by_key.setdefault(result.request.key, []).append(result)

        table = Table(
            title=f"SSL checks {completed}/{len(self._requests)}",
            box=box.SIMPLE,
            title_justify="left",
            pad_edge=False,
        )
        table.add_column("Environment", style="cyan", no_wrap=True)
        table.add_column("Target", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Expires (UTC)", no_wrap=True)
        table.add_column("Days", justify="right")
        table.add_column("Issuer")
        table.add_column("Detail")

        previous_environment = None
        for request in self._requests:
            if previous_environment is not None and request.environment != previous_environment:
                table.add_section()
            environment_label = request.environment if request.environment != previous_environment else ""
            previous_environment = request.environment

            matches = by_key.get(request.key)
            if not matches:
                table.add_row(environment_label, request.hostname, Text("pending", style="dim"), "", "", "", "")
                continue

            result = matches.pop(0)
            days = result.days_until_expiry()
            table.add_row(
                environment_label,
                request.hostname,
                Text(result.status.value, style=STATUS_STYLES[result.status]),
                result.not_after.strftime("%Y-%m-%d %H:%M") if result.not_after else "",
                "" if days is None else str(days),
                result.issuer or "",
                result.error_detail or "",
            )

        return table


class SilentPresenter(PresenterInterface):
    """静默模式：运行期间不输出，结束时打印一次最终报告"""

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)
        self._requests: List[ProbeRequest] = []

    def start(self, requests: List[ProbeRequest], state: RunState):
        self._requests = list(requests)
        self.err_console.print("Processing query!")

    def update(self, state: RunState, result: ProbeResult):
        pass

    def finish(self, state: RunState):
        self.console.print(
            format_report(state, self._requests), markup=False, highlight=False, soft_wrap=True
        )
