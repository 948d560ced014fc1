"""
Client side of the pueue daemon socket protocol.

A connection is either a unix socket or TCP wrapped in TLS that trusts the
daemon's self-signed certificate. Every message is a frame: an 8 byte
big-endian length followed by the payload. The first frame the client sends
is the shared secret and the daemon answers with its version string; after
that frames carry CBOR-encoded requests and responses, which are externally
tagged enums (``"Status"`` or ``{"Start": {...}}``).
"""

from __future__ import annotations

import logging
import socket
import ssl
import struct
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any

import cbor2

from .constants import DAEMON_CONNECT_TIMEOUT, DAEMON_TLS_SERVER_NAME, HEADER_SIZE, PACKET_SIZE
from .errors import ProtocolError, TransportError
from .settings import ConnectionSettings

logger = logging.getLogger(__name__)

_HEADER = struct.Struct(">Q")


# ── Framing ──────────────────────────────────────────────────────────────────


def send_bytes(sock: socket.socket, payload: bytes) -> None:
    sock.sendall(_HEADER.pack(len(payload)))
    for offset in range(0, len(payload), PACKET_SIZE):
        sock.sendall(payload[offset : offset + PACKET_SIZE])


def _receive_exact(sock: socket.socket, size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < size:
        chunk = sock.recv(min(size - len(buffer), 64 * 1024))
        if not chunk:
            raise TransportError("Connection closed by daemon")
        buffer.extend(chunk)
    return bytes(buffer)


def receive_bytes(sock: socket.socket) -> bytes:
    (size,) = _HEADER.unpack(_receive_exact(sock, HEADER_SIZE))
    return _receive_exact(sock, size)


# ── Codec ────────────────────────────────────────────────────────────────────


def encode_message(message: Any) -> bytes:
    return cbor2.dumps(message)


def decode_message(payload: bytes) -> Any:
    try:
        return cbor2.loads(payload)
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise ProtocolError(f"Couldn't decode daemon response: {e}") from e


def split_response(response: Any) -> tuple[str, Any]:
    """Split a tagged response into ``(variant, payload)``."""
    if isinstance(response, str):
        return response, None
    if isinstance(response, dict) and len(response) == 1:
        variant, payload = next(iter(response.items()))
        return str(variant), payload
    raise ProtocolError(f"Unexpected response: {response!r}")


def jsonable(value: Any) -> Any:
    """Turn a decoded CBOR value into something ``json.dumps`` accepts.

    Integer map keys (task ids) become strings, byte strings become text.
    """
    if isinstance(value, dict):
        return {str(key): jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# ── Connection ───────────────────────────────────────────────────────────────


@contextmanager
def _transport_errors(what: str) -> Iterator[None]:
    try:
        yield
    except TransportError:
        raise
    except OSError as e:
        # ssl.SSLError and socket timeouts are OSErrors as well.
        raise TransportError(f"{what}: {e}") from e


def read_shared_secret(path: str) -> bytes:
    with _transport_errors(f"Couldn't read shared secret {path}"):
        with open(path, "rb") as f:
            return f.read()


def _tls_context(cert_path: str) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=cert_path)
    # The daemon certificate is a self-signed leaf, not a CA.
    context.verify_flags |= getattr(ssl, "VERIFY_X509_PARTIAL_CHAIN", 0)
    return context


def _connect(settings: ConnectionSettings, timeout: float) -> socket.socket:
    if settings.use_unix_socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(settings.unix_socket_path)
        except OSError:
            sock.close()
            raise
        return sock

    context = _tls_context(settings.daemon_cert)
    raw = socket.create_connection((settings.host, int(settings.port)), timeout=timeout)
    try:
        return context.wrap_socket(raw, server_hostname=DAEMON_TLS_SERVER_NAME)
    except OSError:
        raw.close()
        raise


class DaemonConnection:
    """One authenticated connection to the daemon."""

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self.daemon_version: str | None = None

    @classmethod
    def open(cls, settings: ConnectionSettings, timeout: float = DAEMON_CONNECT_TIMEOUT) -> DaemonConnection:
        secret = read_shared_secret(settings.shared_secret_path)
        target = (
            settings.unix_socket_path
            if settings.use_unix_socket
            else f"{settings.host}:{settings.port}"
        )
        with _transport_errors(f"Couldn't connect to pueue daemon at {target}"):
            sock = _connect(settings, timeout)
        connection = cls(sock)
        try:
            connection.handshake(secret)
        except Exception:
            connection.close()
            raise
        return connection

    def handshake(self, secret: bytes) -> str:
        with _transport_errors("Handshake with pueue daemon failed"):
            send_bytes(self._sock, secret)
            version = receive_bytes(self._sock)
        self.daemon_version = version.decode("utf-8", errors="replace")
        logger.debug("Connected to pueue daemon %s", self.daemon_version)
        return self.daemon_version

    def send_request(self, message: Any) -> None:
        with _transport_errors("Couldn't send request to pueue daemon"):
            send_bytes(self._sock, encode_message(message))

    def receive_response(self) -> Any:
        with _transport_errors("Couldn't read response from pueue daemon"):
            payload = receive_bytes(self._sock)
        return decode_message(payload)

    def exchange(self, message: Any) -> Any:
        self.send_request(message)
        return self.receive_response()

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError as e:
            logger.debug("Error closing daemon connection: %s", e)

    def __enter__(self) -> DaemonConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
