"""
测试公共夹具：本地TLS服务器和测试证书
"""
import ipaddress
import socket
import ssl
import threading
from datetime import datetime, timezone, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


def make_certificate(not_before: datetime, not_after: datetime,
                     common_name: str = "localhost", issuer_org: str = "Test CA"):
    """生成指定有效期的自签名证书"""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, issuer_org),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return certificate, key


class LocalTLSServer:
    """在线程中运行的本地TLS服务器，每个连接完成握手后等待客户端关闭"""

    def __init__(self, certificate, key, directory):
        cert_path = directory / f"cert-{certificate.serial_number}.pem"
        key_path = directory / f"key-{certificate.serial_number}.pem"
        cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))

        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(str(cert_path), str(key_path))

        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]

        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def target(self) -> str:
        return f"127.0.0.1:{self.port}"

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn):
        conn.settimeout(2)
        try:
            with self.context.wrap_socket(conn, server_side=True) as tls:
                tls.recv(1)
        except (ssl.SSLError, OSError):
            pass
        finally:
            conn.close()

    def close(self):
        self._stop.set()
        self._thread.join(timeout=1)
        self._sock.close()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def tls_server_factory(tmp_path):
    """按证书有效期创建本地TLS服务器"""
    servers = []

    def factory(not_before: datetime, not_after: datetime, **kwargs) -> LocalTLSServer:
        certificate, key = make_certificate(not_before, not_after, **kwargs)
        server = LocalTLSServer(certificate, key, tmp_path)
        servers.append(server)
        return server

    yield factory

    for server in servers:
        server.close()


@pytest.fixture
def silent_server():
    """只监听不应答的服务器：TCP连接成功，TLS握手永远不会完成"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    yield f"127.0.0.1:{sock.getsockname()[1]}"
    sock.close()


@pytest.fixture
def closed_port():
    """一个当前没有服务监听的本地端口"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def certificate_factory():
    return make_certificate
