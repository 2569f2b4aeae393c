"""
SCMP echo responder.

Answers echo requests arriving on a UDP underlay socket with the matching
echo reply. Useful as the remote end for local runs of the speed client.
"""

import logging
import signal
import socket
import sys
import threading
from pathlib import Path
from typing import Optional

import click

from .core.config import Config
from .core.errors import PacketDecodeError, PacketEncodeError, ScionLatError
from .core.logger import setup_logging
from .net.addr import Endpoint
from .net.packet import (MIN_MTU, decode_packet, echo_reply_packet, encode_packet,
                         is_echo_request)
from .net.transport import DEFAULT_RECV_BUFFER


def dispatch_packet(data: bytes, logger: logging.Logger) -> Optional[bytes]:
    """Return the encoded echo reply for ``data``, or None if it needs no answer."""
    try:
        pkt = decode_packet(data)
    except PacketDecodeError as e:
        logger.warning(f"Dropping malformed packet: {e}")
        return None

    if not is_echo_request(pkt):
        logger.debug(f"Ignoring non echo request from {pkt.src_ia}")
        return None

    try:
        return encode_packet(echo_reply_packet(pkt), max_len=MIN_MTU)
    except PacketEncodeError as e:
        logger.warning(f"Cannot answer echo request: {e}")
        return None


class EchoResponder:
    """Serves echo replies on ``local`` until stopped."""

    def __init__(self, local: Endpoint, recv_buffer: int = DEFAULT_RECV_BUFFER):
        self.logger = logging.getLogger(__name__)
        self._recv_buffer = recv_buffer

        family = socket.AF_INET if local.host.version == 4 else socket.AF_INET6
        self._sock = socket.socket(family, socket.SOCK_DGRAM)
        self._sock.bind(local.underlay)
        self.local = local.with_port(self._sock.getsockname()[1])

        self._cancel = threading.Event()
        self._thread = None
        self.replies_sent = 0

    def serve_once(self, timeout: Optional[float] = None) -> Optional[int]:
        """Handle one datagram; returns the echoed correlation id if one was answered."""
        self._sock.settimeout(timeout)
        try:
            data, addr = self._sock.recvfrom(self._recv_buffer)
        except socket.timeout:
            return None

        reply = dispatch_packet(data, self.logger)
        if reply is None:
            return None

        self._sock.sendto(reply, addr)
        self.replies_sent += 1

        correlation_id = decode_packet(reply).payload.info.id
        self.logger.debug(f"Echo reply id={correlation_id:#018x} sent to {addr}")
        return correlation_id

    def serve_forever(self, cancel: Optional[threading.Event] = None,
                      poll_interval: float = 0.1) -> None:
        cancel = cancel if cancel is not None else self._cancel
        while not cancel.is_set():
            try:
                self.serve_once(timeout=poll_interval)
            except OSError as e:
                if cancel.is_set():
                    break
                self.logger.error(f"Error in responder loop: {e}")
                raise

    def start(self) -> None:
        """Serve on a background thread."""
        if self._thread is not None:
            self.logger.warning("Echo responder already running")
            return

        self._cancel.clear()
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        self.logger.info(f"Echo responder listening on {self.local}")

    def stop(self) -> None:
        self._cancel.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        self._sock.close()
        self.logger.info("Echo responder stopped")

    def __enter__(self) -> 'EchoResponder':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


@click.command()
@click.option('-l', '--local', 'local_address', required=True,
              help='Local SCION address to listen on, ISD-AS,[IP]:Port')
@click.option('--config', '-c', default=None, help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def main(local_address: str, config: Optional[str], verbose: bool):
    """Answer SCMP echo requests until interrupted."""
    cancel = threading.Event()

    def signal_handler(signum, frame):
        logging.info(f"Received signal {signum}, shutting down...")
        cancel.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        cfg = Config.from_file(Path(config)) if config else Config.default()
        cfg.validate()

        setup_logging(cfg.logging, logging.DEBUG if verbose else None)

        responder = EchoResponder(Endpoint.parse(local_address),
                                  recv_buffer=cfg.transport.recv_buffer)
        click.echo(f"Listening on {responder.local}")
        try:
            responder.serve_forever(cancel)
        finally:
            responder.stop()

    except (ScionLatError, OSError) as e:
        logging.error(f"Fatal error: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
