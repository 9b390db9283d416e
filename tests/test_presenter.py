"""
结果展示测试
"""
from datetime import datetime, timezone, timedelta
from io import StringIO

from rich.console import Console

from ssl_certificate_checker.models import ProbeRequest, ProbeResult, RunState, Status
from ssl_certificate_checker.services.presenter import LivePresenter, SilentPresenter


def make_console():
    return Console(file=StringIO(), width=200, force_terminal=False, color_system=None)


def render_to_text(renderable) -> str:
    console = make_console()
    console.print(renderable)
    return console.file.getvalue()


class TestLivePresenter:
    """实时展示测试类"""

    def setup_method(self):
        """测试前准备"""
        self.requests = [
            ProbeRequest("prod", "a.example.com"),
            ProbeRequest("prod", "b.example.com"),
            ProbeRequest("staging", "c.example.com"),
        ]
        self.state = RunState(total=3)
        self.presenter = LivePresenter(console=make_console(), refresh_per_second=20)

    def test_render_shows_pending_targets(self):
        """测试未完成的目标显示为 pending"""
        self.presenter.start(self.requests, self.state)
        try:
            output = render_to_text(self.presenter.render())
        finally:
            self.presenter.finish(self.state)

        assert "SSL checks 0/3" in output
        assert output.count("pending") == 3

    def test_render_reflects_updates(self):
        """测试结果更新后表格内容"""
        not_after = datetime.now(timezone.utc) + timedelta(days=100)
        result = ProbeResult(self.requests[1], Status.VALID, not_after=not_after, issuer="Test CA")

        self.presenter.start(self.requests, self.state)
        self.state.results.append(result)
        self.state.completed += 1
        self.presenter.update(self.state, result)
        output = render_to_text(self.presenter.render())
        self.presenter.finish(self.state)

        assert "SSL checks 1/3" in output
        assert "Valid" in output
        assert "Test CA" in output
        assert not_after.strftime("%Y-%m-%d %H:%M") in output
        assert output.count("pending") == 2

    def test_environments_listed_in_request_order(self):
        """测试环境按请求顺序显示"""
        self.presenter.start(self.requests, self.state)
        output = render_to_text(self.presenter.render())
        self.presenter.finish(self.state)

        assert output.index("prod") < output.index("staging")

    def test_finish_prints_summary(self):
        """测试结束时输出统计行"""
        self.state.results.append(ProbeResult(self.requests[0], Status.EXPIRED))
        self.state.completed = 1
        self.state.interrupted = True

        self.presenter.start(self.requests, self.state)
        self.presenter.finish(self.state)
        output = self.presenter.console.file.getvalue()

        assert "Passed: 0" in output
        assert "Failed: 1" in output
        assert "Interrupted: 2 not checked" in output


class TestSilentPresenter:
    """静默模式测试类"""

    def test_silent_output(self):
        """测试运行期间只提示一次，结束时输出报告"""
        console = make_console()
        err_console = make_console()
        presenter = SilentPresenter(console=console, err_console=err_console)
        requests = [ProbeRequest("prod", "a.example.com")]
        state = RunState(total=1)

        presenter.start(requests, state)
        result = ProbeResult(requests[0], Status.TIMEOUT, error_detail="no response within 10s")
        state.results.append(result)
        state.completed = 1
        presenter.update(state, result)

        assert console.file.getvalue() == ""
        assert "Processing query!" in err_console.file.getvalue()

        presenter.finish(state)
        output = console.file.getvalue()

        assert "[prod]" in output
        assert "Timeout (1):" in output
        assert "no response within 10s" in output
