"""
Sensor Exporter - sensor readings as a Prometheus text exposition.

Polls heterogeneous sensors (UPS daemons, processes, ...) on independent
schedules and serves their latest readings over HTTP.
"""

from .const import APP_VERSION

__version__ = APP_VERSION
