"""
Application constants and metadata.
"""

# Application info
APP_NAME = "Sensor Exporter"
APP_VERSION = "0.1.0"

# HTTP exposition defaults
DEFAULT_LISTEN = "0.0.0.0"
DEFAULT_PORT = 9091
DEFAULT_PATH = "/metrics"
EXPOSITION_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

# Scraping defaults
DEFAULT_SCRAPE_INTERVAL = 10.0
DEFAULT_TIMEOUT = 10.0

# Process-wide incident counter metric
INCIDENTS_METRIC = "sensor_exporter_incidents_total"
