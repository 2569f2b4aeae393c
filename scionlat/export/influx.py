"""
InfluxDB export of measurement results.
"""

import logging

from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from ..core.config import InfluxDBConfig
from ..net.addr import Endpoint
from ..probe.measurement import MeasurementResult


class ResultExporter:
    """Writes one point per finished run. Failures are logged, never raised."""

    def __init__(self, config: InfluxDBConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self._influx_client = None
        self._write_api = None

        if config.enabled:
            self._init_influxdb()

    def _init_influxdb(self) -> None:
        """Initialize InfluxDB connection."""
        try:
            self._influx_client = InfluxDBClient(
                url=self.config.url,
                token=self.config.token,
                org=self.config.organization
            )
            self._write_api = self._influx_client.write_api(write_options=SYNCHRONOUS)

            self.logger.info("InfluxDB connection established")

        except Exception as e:
            self.logger.error(f"Failed to connect to InfluxDB: {e}")
            self._influx_client = None
            self._write_api = None

    @property
    def connected(self) -> bool:
        return self._write_api is not None

    def export(self, result: MeasurementResult, source: Endpoint, destination: Endpoint) -> bool:
        """Send ``result`` to InfluxDB; returns whether the write went through."""
        if not self._write_api:
            return False

        summary = result.summary()
        try:
            point = Point("scion_latency") \
                .field("rtt_ms", result.average_rtt_ms) \
                .field("latency_ms", result.average_latency_ms) \
                .field("min_ms", summary['min_ms']) \
                .field("max_ms", summary['max_ms']) \
                .field("jitter_ms", summary['jitter_ms']) \
                .field("samples", result.successful_samples) \
                .field("attempts", result.attempts) \
                .tag("src_ia", str(source.ia)) \
                .tag("dst_ia", str(destination.ia)) \
                .tag("src_host", str(source.host)) \
                .tag("dst_host", str(destination.host))

            self._write_api.write(
                bucket=self.config.bucket,
                record=point
            )
            return True

        except Exception as e:
            self.logger.error(f"Failed to send data to InfluxDB: {e}")
            return False

    def close(self) -> None:
        if self._influx_client:
            self._influx_client.close()
            self._influx_client = None
            self._write_api = None
