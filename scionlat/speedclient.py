"""
Speed client: RTT and latency estimates between two SCION endpoints.
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import click

from .core.config import Config
from .core.errors import MeasurementCancelled, ScionLatError, UsageError
from .core.logger import setup_logging
from .export.influx import ResultExporter
from .net.addr import Endpoint
from .net.transport import open_session
from .probe.builder import ProbeBuilder
from .probe.measurement import MeasurementLoop, MeasurementResult

logger = logging.getLogger(__name__)

USAGE = (
    "\n"
    "random_speedclient -s SourceSCIONAddress -d DestinationSCIONAddress\n"
    "\tProvides speed estimates (RTT and latency) from source to destination\n"
    "\tThe SCION address is specified as ISD-AS,[IP Address]:Port\n"
    "\tIf source port unspecified, a random available one will be used.\n"
    "\tExample SCION address 1-1,[127.0.0.1]:42002\n"
)

EXIT_CANCELLED = 130


def format_report(source: str, destination: str, result: MeasurementResult) -> str:
    return (
        f"Source: {source}\n"
        f"Destination: {destination}\n"
        "Time estimates:\n"
        f"\tRTT - {result.average_rtt_ms:.3f}ms\n"
        f"\tLatency - {result.average_latency_ms:.3f}ms"
    )


def load_config(path: Optional[str], samples: Optional[int] = None,
                attempts: Optional[int] = None, timeout: Optional[float] = None) -> Config:
    """Load the configuration file, if any, and apply command line overrides."""
    cfg = Config.from_file(Path(path)) if path else Config.default()

    if samples is not None:
        cfg.probe.samples = samples
    if attempts is not None:
        cfg.probe.max_attempts = attempts
    if timeout is not None:
        cfg.probe.timeout = timeout

    cfg.validate()
    return cfg


def measure(local: Endpoint, remote: Endpoint, cfg: Config,
            cancel: Optional[threading.Event] = None,
            builder: Optional[ProbeBuilder] = None) -> MeasurementResult:
    """Open a session from ``local`` to ``remote`` and run one measurement batch."""
    with open_session(local, remote, recv_buffer=cfg.transport.recv_buffer) as session:
        loop = MeasurementLoop(
            session,
            builder=builder,
            target_samples=cfg.probe.samples,
            max_attempts=cfg.probe.max_attempts,
            timeout=cfg.probe.receive_timeout,
            cancel=cancel,
            max_packet_len=cfg.transport.mtu,
        )
        return loop.run()


def _require_addresses(source: Optional[str], destination: Optional[str]) -> None:
    if not source:
        raise UsageError("Source address needs to be specified with -s")
    if not destination:
        raise UsageError("Destination address needs to be specified with -d")


@click.command()
@click.option('-s', 'source', default=None, help='Source SCION Address')
@click.option('-d', 'destination', default=None, help='Destination SCION Address')
@click.option('--config', '-c', default=None, help='Configuration file path')
@click.option('--samples', '-n', type=click.IntRange(min=1), default=None,
              help='Number of successful samples to average over')
@click.option('--attempts', '-a', type=click.IntRange(min=1), default=None,
              help='Maximum number of probes to send')
@click.option('--timeout', '-t', type=click.FloatRange(min=0), default=None,
              help='Seconds to wait for each reply, 0 waits forever')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def main(source: Optional[str], destination: Optional[str], config: Optional[str],
         samples: Optional[int], attempts: Optional[int], timeout: Optional[float],
         verbose: bool):
    """Provides speed estimates (RTT and latency) from source to destination."""
    try:
        _require_addresses(source, destination)
    except UsageError as e:
        click.echo(USAGE)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    cancel = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        cancel.set()

    previous_handlers = {
        signum: signal.signal(signum, signal_handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        cfg = load_config(config, samples, attempts, timeout)

        setup_logging(cfg.logging, logging.DEBUG if verbose else None)

        local = Endpoint.parse(source)
        remote = Endpoint.parse(destination)

        logger.info(f"Measuring {local} -> {remote}")
        result = measure(local, remote, cfg, cancel=cancel)

    except MeasurementCancelled:
        logger.info("Interrupted by user")
        click.echo("Cancelled", err=True)
        sys.exit(EXIT_CANCELLED)
    except ScionLatError as e:
        logger.error(f"Fatal error: {e}")
        if verbose:
            logger.exception("Full traceback:")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    click.echo(format_report(source, destination, result))
    logger.info(
        "Samples: " + ", ".join(
            f"{key}={value:.3f}" for key, value in result.summary().items()
        )
    )

    if cfg.influxdb.enabled:
        exporter = ResultExporter(cfg.influxdb)
        try:
            exporter.export(result, local, remote)
        finally:
            exporter.close()


if __name__ == '__main__':
    main()
