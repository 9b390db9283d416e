"""
命令行入口
"""
from typing import Any, Dict, Optional, Tuple

import click

from .exceptions import ConfigurationError
from .models import (
    DEFAULT_LOG_FILE, DEFAULT_MAX_WORKERS, DEFAULT_PORT, DEFAULT_TIMEOUT, DEFAULT_WARNING_DAYS,
    CheckSettings, QueryConfig
)
from .runner import SSLCertificateMonitor
from .services.aggregator import EXIT_CONFIG_ERROR
from .services.config_loader import ConfigLoader, parse_target_option


__version__ = "0.1.0"


def _pick(cli_value: Any, settings: Dict[str, Any], key: str, default: Any) -> Any:
    """命令行参数优先，其次配置文件，最后默认值"""
    if cli_value is not None:
        return cli_value
    return settings.get(key, default)


def _merge_cli_targets(query: QueryConfig, file_targets: Tuple[str, ...],
                       domain_targets: Tuple[str, ...]) -> QueryConfig:
    for value in file_targets:
        env, path = parse_target_option(value)
        query.file_targets[env] = path
        query.environment_order.append(env)

    for value in domain_targets:
        env, domains = parse_target_option(value, list_value=True)
        query.domain_targets.setdefault(env, []).extend(domains)
        query.environment_order.append(env)

    return query


def build_settings(file_settings: Dict[str, Any], timeout: Optional[int], silent: bool,
                   debug: bool, warning_days: Optional[int], default_port: Optional[int],
                   max_workers: Optional[int], insecure: bool, environments: Optional[str],
                   log_file: Optional[str], report_json: Optional[str],
                   sns_topic_arn: Optional[str]) -> CheckSettings:
    """
    合并命令行参数和配置文件设置

    Returns:
        CheckSettings: 运行配置

    Raises:
        ConfigurationError: 数值超出范围
    """
    settings = CheckSettings(
        timeout=_pick(timeout, file_settings, 'timeout', DEFAULT_TIMEOUT),
        silent=silent or file_settings.get('silent', False),
        debug=debug or file_settings.get('debug', False),
        warning_days=_pick(warning_days, file_settings, 'warning_days', DEFAULT_WARNING_DAYS),
        default_port=_pick(default_port, file_settings, 'default_port', DEFAULT_PORT),
        max_workers=_pick(max_workers, file_settings, 'max_workers', DEFAULT_MAX_WORKERS),
        verify=False if insecure else file_settings.get('verify', True),
        log_file=_pick(log_file, file_settings, 'log_file', DEFAULT_LOG_FILE),
        environments=[env.strip() for env in environments.split(',') if env.strip()] if environments else None,
        sns_topic_arn=_pick(sns_topic_arn, file_settings, 'sns_topic_arn', None),
        report_json=report_json,
    )

    if not 0 < settings.timeout <= 65535:
        raise ConfigurationError(f"timeout must be between 1 and 65535 seconds, got {settings.timeout}")
    if settings.warning_days < 0:
        raise ConfigurationError(f"warning_days must not be negative, got {settings.warning_days}")
    if not 0 < settings.default_port < 65536:
        raise ConfigurationError(f"default_port must be between 1 and 65535, got {settings.default_port}")
    if settings.max_workers < 1:
        raise ConfigurationError(f"max_workers must be at least 1, got {settings.max_workers}")
    return settings


@click.group(invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              help="Configuration file location (default ~/.config/ssl-checker/config.yaml).")
@click.option("-e", "--environments", help="Comma delimited string specifying the environments to check.")
@click.option("-s", "--silent", is_flag=True, help="Disable UI, print a final report only.")
@click.option("-d", "--debug", is_flag=True, help="Enable debug log.")
@click.option("-t", "--timeout", type=click.IntRange(0, 65535), help="Set timeout in seconds for SSL check queries.")
@click.option("-w", "--warning-days", type=int, help="Days before expiry a certificate is reported as ExpiringSoon.")
@click.option("-p", "--default-port", type=int, help="Port used when a target does not specify one.")
@click.option("-j", "--max-workers", type=int, help="Maximum number of concurrent probes.")
@click.option("-k", "--insecure", is_flag=True, help="Skip certificate chain and hostname verification.")
@click.option("-f", "--file-target", "file_targets", multiple=True, metavar="ENV=PATH",
              help="File with one host[:port] per line for an environment.")
@click.option("-D", "--domain-target", "domain_targets", multiple=True, metavar="ENV=HOSTS",
              help="Comma separated hosts for an environment.")
@click.option("--log-file", help=f"Log file location (default {DEFAULT_LOG_FILE}).")
@click.option("--report-json", type=click.Path(dir_okay=False), help="Write the run summary as JSON.")
@click.option("--sns-topic-arn", envvar="SNS_TOPIC_ARN", help="Publish the final report to this SNS topic.")
@click.pass_context
def main(ctx, config_path, environments, silent, debug, timeout, warning_days, default_port,
         max_workers, insecure, file_targets, domain_targets, log_file, report_json, sns_topic_arn):
    """ssl-checker is a tool to _quickly_ check certificate details of multiple https targets."""
    if ctx.invoked_subcommand is not None:
        return

    try:
        query, file_settings = ConfigLoader().load(config_path)
        query = _merge_cli_targets(query, file_targets, domain_targets)
        settings = build_settings(
            file_settings, timeout, silent, debug, warning_days, default_port, max_workers,
            insecure, environments, log_file, report_json, sns_topic_arn
        )
    except ConfigurationError as e:
        click.secho(f"Configuration error: {e}", fg="red", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        monitor = SSLCertificateMonitor(settings)
    except OSError as e:
        click.secho(f"Error failed to configure logger: {e}", fg="red", err=True)
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        exit_code = monitor.execute(query)
    finally:
        monitor.logger_service.close()
    ctx.exit(exit_code)


@main.command()
def version():
    """Show the current version"""
    click.echo(__version__)


if __name__ == "__main__":
    main()
