"""
命令行入口测试，探测目标均为本地TLS服务器
"""
from datetime import timedelta

import pytest
from click.testing import CliRunner

from ssl_certificate_checker.cli import __version__, build_settings, main
from ssl_certificate_checker.exceptions import ConfigurationError
from ssl_certificate_checker.models import DEFAULT_PORT, DEFAULT_TIMEOUT, DEFAULT_WARNING_DAYS


class TestBuildSettings:
    """运行配置合并测试类"""

    def build(self, file_settings=None, **overrides):
        arguments = dict(
            timeout=None, silent=False, debug=False, warning_days=None, default_port=None,
            max_workers=None, insecure=False, environments=None, log_file=None,
            report_json=None, sns_topic_arn=None
        )
        arguments.update(overrides)
        return build_settings(file_settings or {}, **arguments)

    def test_defaults(self):
        settings = self.build()

        assert settings.timeout == DEFAULT_TIMEOUT
        assert settings.warning_days == DEFAULT_WARNING_DAYS
        assert settings.default_port == DEFAULT_PORT
        assert settings.verify is True
        assert settings.environments is None

    def test_command_line_overrides_file(self):
        """测试命令行参数优先于配置文件"""
        settings = self.build({'timeout': 3, 'warning_days': 7}, timeout=20)

        assert settings.timeout == 20
        assert settings.warning_days == 7

    def test_silent_from_file(self):
        assert self.build({'silent': True}).silent is True

    def test_environments_split(self):
        settings = self.build(environments="prod, staging,,")

        assert settings.environments == ["prod", "staging"]

    def test_insecure_disables_verification(self):
        assert self.build(insecure=True).verify is False

    @pytest.mark.parametrize("overrides", [
        {'timeout': 0}, {'warning_days': -1}, {'default_port': 70000}, {'max_workers': 0},
    ])
    def test_out_of_range_values(self, overrides):
        with pytest.raises(ConfigurationError):
            self.build(**overrides)


class TestCommandLine:
    """命令行测试类"""

    def setup_method(self):
        """测试前准备"""
        self.runner = CliRunner()

    def write_config(self, tmp_path, content):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(content, encoding="utf-8")
        return str(config_path)

    def invoke(self, tmp_path, *args):
        return self.runner.invoke(main, ["--log-file", str(tmp_path / "checker.log"), *args])

    def test_version_command(self):
        result = self.runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert result.output.strip() == __version__

    def test_valid_certificate_exit_ok(self, tmp_path, tls_server_factory, now):
        """测试有效证书时退出码为0"""
        server = tls_server_factory(now - timedelta(days=1), now + timedelta(days=200))
        config = self.write_config(tmp_path, f"queries:\n  prod:\n    - {server.target}\n")

        result = self.invoke(tmp_path, "-c", config, "-s", "-k", "-t", "5")

        assert result.exit_code == 0, result.output
        assert "Valid (1):" in result.output
        assert (tmp_path / "checker.log").exists()

    def test_expired_certificate_exit_failed(self, tmp_path, tls_server_factory, now):
        """测试过期证书时退出码为1"""
        server = tls_server_factory(now - timedelta(days=90), now - timedelta(days=2))

        result = self.invoke(tmp_path, "-c", self.write_config(tmp_path, "{}\n"),
                             "-s", "-t", "5", "-D", f"prod={server.target}")

        assert result.exit_code == 1
        assert "Expired (1):" in result.output

    def test_file_target_option(self, tmp_path, closed_port):
        """测试命令行指定目标文件"""
        target_file = tmp_path / "prod.txt"
        target_file.write_text(f"127.0.0.1:{closed_port}\n", encoding="utf-8")

        result = self.invoke(tmp_path, "-c", self.write_config(tmp_path, "{}\n"),
                             "-s", "-f", f"prod={target_file}")

        assert result.exit_code == 1
        assert "connection refused" in result.output

    def test_nothing_to_do(self, tmp_path):
        """测试过滤后没有目标"""
        config = self.write_config(tmp_path, "queries:\n  prod:\n    - a.example.com\n")

        result = self.invoke(tmp_path, "-c", config, "-s", "-e", "qa")

        assert result.exit_code == 3
        assert "Nothing to do" in result.output

    def test_missing_config_file(self, tmp_path):
        """测试指定的配置文件不存在"""
        result = self.invoke(tmp_path, "-c", str(tmp_path / "absent.yaml"))

        assert result.exit_code == 2

    def test_invalid_config_type(self, tmp_path):
        """测试配置中不支持的数据类型"""
        config = self.write_config(tmp_path, "queries:\n  prod: 42\n")

        result = self.invoke(tmp_path, "-c", config, "-s")

        assert result.exit_code == 2

    def test_zero_timeout_rejected(self, tmp_path):
        """测试超时时间为0"""
        config = self.write_config(tmp_path, "queries:\n  prod:\n    - a.example.com\n")

        result = self.invoke(tmp_path, "-c", config, "-s", "-t", "0")

        assert result.exit_code == 2

    def test_malformed_target(self, tmp_path):
        """测试格式错误的目标"""
        config = self.write_config(tmp_path, "queries:\n  prod:\n    - 'example.com:99999'\n")

        result = self.invoke(tmp_path, "-c", config, "-s")

        assert result.exit_code == 2
        assert "malformed target" in result.output
