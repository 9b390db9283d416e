"""
SSL证书探测服务
"""
import contextlib
import socket
import ssl
import threading
import time
from concurrent.futures import Future, wait
from typing import Optional, Set, Tuple
import logging

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..exceptions import ProbeCancelled
from ..interfaces import ProberInterface
from ..models import (
    DEFAULT_PORT, DEFAULT_TIMEOUT, DEFAULT_WARNING_DAYS, ProbeRequest, ProbeResult, Status
)
from .error_handler import ProbeErrorHandler
from .expiry_calculator import ExpiryCalculator
from .target_resolver import split_host_port


# 等待DNS解析时检查取消信号的间隔（秒）
RESOLVE_POLL_INTERVAL = 0.1


class SSLCertificateChecker(ProberInterface):
    """SSL证书探测器实现"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, port: int = DEFAULT_PORT,
                 warning_days: int = DEFAULT_WARNING_DAYS, verify: bool = True):
        """
        初始化SSL证书探测器

        Args:
            timeout: 单次探测的总超时时间（秒），覆盖DNS、连接和握手
            port: 目标未指定端口时使用的端口，默认443
            warning_days: 即将过期的提前警告天数
            verify: 是否校验证书链和主机名
        """
        self.timeout = timeout
        self.port = port
        self.verify = verify
        self.logger = logging.getLogger(__name__)
        self.error_handler = ProbeErrorHandler()
        self.expiry_calculator = ExpiryCalculator(warning_days=warning_days)

        self._sockets_lock = threading.Lock()
        self._active_sockets: Set[socket.socket] = set()

    def probe(self, request: ProbeRequest,
              cancel_event: Optional[threading.Event] = None) -> ProbeResult:
        """
        探测单个目标的SSL证书

        Args:
            request: 探测请求
            cancel_event: 取消信号，被设置后放弃探测

        Returns:
            ProbeResult: 探测结果

        Raises:
            ProbeCancelled: 探测在完成前被取消
        """
        deadline = time.monotonic() + self.timeout
        self._check_cancelled(request.hostname, cancel_event)

        try:
            host, port = split_host_port(request.hostname, self.port)
            der_cert, verify_error = self._fetch_leaf_certificate(host, port, deadline, cancel_event)
            certificate = x509.load_der_x509_certificate(der_cert)
        except ProbeCancelled:
            raise
        except Exception as e:
            self._check_cancelled(request.hostname, cancel_event, cause=e)
            return self._failure_result(request, e)

        not_before = certificate.not_valid_before_utc
        not_after = certificate.not_valid_after_utc
        status = self.expiry_calculator.classify(not_before, not_after)
        error_detail = None

        if verify_error and status in (Status.VALID, Status.EXPIRING_SOON):
            status = Status.CONNECTION_ERROR
            error_detail = f"certificate verify failed: {verify_error}"

        return ProbeResult(
            request=request,
            status=status,
            not_before=not_before,
            not_after=not_after,
            error_detail=error_detail,
            subject=self._parse_subject(certificate),
            issuer=self._parse_issuer(certificate)
        )

    def abort(self):
        """关闭所有进行中的连接的读写方向，阻塞中的探测会立即出错返回，套接字由所属线程释放"""
        with self._sockets_lock:
            sockets = list(self._active_sockets)

        for sock in sockets:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)

        if sockets:
            self.logger.debug(f"已放弃 {len(sockets)} 个进行中的连接")

    def _failure_result(self, request: ProbeRequest, error: Exception) -> ProbeResult:
        self.error_handler.handle_probe_error(request.hostname, error)

        if self.error_handler.is_timeout(error):
            return ProbeResult(
                request=request,
                status=Status.TIMEOUT,
                error_detail=f"no response within {self.timeout}s"
            )

        return ProbeResult(
            request=request,
            status=Status.CONNECTION_ERROR,
            error_detail=self.error_handler.describe(error)
        )

    def _fetch_leaf_certificate(self, host: str, port: int, deadline: float,
                                cancel_event: Optional[threading.Event]) -> Tuple[bytes, Optional[str]]:
        """
        获取叶子证书（DER格式）

        校验失败时在同一截止时间内不校验地重新握手，以便仍能读取证书有效期。

        Returns:
            Tuple[bytes, Optional[str]]: 证书和校验失败信息
        """
        if not self.verify:
            return self._handshake(host, port, self._unverified_context(), deadline, cancel_event), None

        try:
            return self._handshake(host, port, ssl.create_default_context(), deadline, cancel_event), None
        except ssl.SSLCertVerificationError as e:
            verify_error = e.verify_message or getattr(e, "reason", None) or str(e)
            self.logger.debug(f"{host}:{port} 证书校验失败（{verify_error}），不校验重新获取证书")

        der_cert = self._handshake(host, port, self._unverified_context(), deadline, cancel_event)
        return der_cert, verify_error

    def _handshake(self, host: str, port: int, context: ssl.SSLContext, deadline: float,
                   cancel_event: Optional[threading.Event]) -> bytes:
        sock = self._connect(host, port, deadline, cancel_event)
        try:
            ssock = context.wrap_socket(sock, server_hostname=host, do_handshake_on_connect=False)
        except Exception:
            self._release(sock)
            raise

        # 包装后的套接字登记之后才移除原套接字
        self._track(ssock)
        self._untrack(sock)
        try:
            self._check_cancelled(host, cancel_event)
            ssock.settimeout(self._remaining(deadline))
            ssock.do_handshake()
            der_cert = ssock.getpeercert(binary_form=True)
        finally:
            self._release(ssock)

        if not der_cert:
            raise ssl.SSLError(f"no certificate presented by {host}:{port}")
        return der_cert

    def _connect(self, host: str, port: int, deadline: float,
                 cancel_event: Optional[threading.Event]) -> socket.socket:
        """
        依次尝试解析出的每个地址，所有尝试共享同一截止时间

        返回的套接字仍处于登记状态，由调用方负责释放。
        """
        addresses = self._resolve(host, port, deadline, cancel_event)
        last_error = None

        for family, socktype, proto, _, address in addresses:
            sock = socket.socket(family, socktype, proto)
            self._track(sock)
            try:
                self._check_cancelled(host, cancel_event)
                sock.settimeout(self._remaining(deadline))
                sock.connect(address)
            except OSError as e:
                self._release(sock)
                last_error = e
                if self.error_handler.is_timeout(e):
                    raise
                continue
            except ProbeCancelled:
                self._release(sock)
                raise

            return sock

        if last_error is not None:
            raise last_error
        raise OSError(f"no usable address for {host}:{port}")

    def _resolve(self, host: str, port: int, deadline: float,
                 cancel_event: Optional[threading.Event]) -> list:
        """
        在后台线程中解析地址，等待时间受探测截止时间限制

        getaddrinfo 本身无法中断，超时后解析线程被放弃；它是守护线程，
        不会阻止进程退出。

        Raises:
            TimeoutError: 截止时间前没有完成解析
            ProbeCancelled: 等待期间收到取消信号
        """
        lookup: Future = Future()

        def run():
            try:
                lookup.set_result(socket.getaddrinfo(host, port, type=socket.SOCK_STREAM))
            except Exception as e:
                lookup.set_exception(e)

        threading.Thread(target=run, name=f"resolve-{host}", daemon=True).start()

        while not lookup.done():
            wait([lookup], timeout=min(self._remaining(deadline), RESOLVE_POLL_INTERVAL))
            self._check_cancelled(host, cancel_event)

        self._remaining(deadline)
        return lookup.result()

    @staticmethod
    def _remaining(deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError("probe deadline exceeded")
        return remaining

    @staticmethod
    def _unverified_context() -> ssl.SSLContext:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    @staticmethod
    def _check_cancelled(target: str, cancel_event: Optional[threading.Event],
                         cause: Optional[Exception] = None):
        if cancel_event is not None and cancel_event.is_set():
            raise ProbeCancelled(f"probe of {target} cancelled") from cause

    def _track(self, sock: socket.socket):
        with self._sockets_lock:
            self._active_sockets.add(sock)

    def _untrack(self, sock: socket.socket):
        with self._sockets_lock:
            self._active_sockets.discard(sock)

    def _release(self, sock: socket.socket):
        self._untrack(sock)
        sock.close()

    def _parse_subject(self, certificate: x509.Certificate) -> Optional[str]:
        """
        解析证书主体的通用名称

        Args:
            certificate: 证书

        Returns:
            Optional[str]: 通用名称，没有时为None
        """
        names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return str(names[0].value) if names else None

    def _parse_issuer(self, certificate: x509.Certificate) -> str:
        """
        解析证书颁发者，优先使用组织名称，其次通用名称

        Args:
            certificate: 证书

        Returns:
            str: 证书颁发者
        """
        for oid in (NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME):
            names = certificate.issuer.get_attributes_for_oid(oid)
            if names:
                return str(names[0].value)

        return "Unknown Issuer"
