# config/monitoring.py

import os

from prometheus_client import Counter, Histogram


class MonitoringConfig:
    """Monitoring and logging configuration"""

    MONITORING_ENABLED = os.environ.get("MONITORING_ENABLED", "false").lower() == "true"
    METRICS_ENDPOINT = os.environ.get("METRICS_ENDPOINT", "/metrics")

    # Logging Configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")  # 'json' or 'text'
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    LOG_FILE_MAX_BYTES = int(os.environ.get("LOG_FILE_MAX_BYTES", 10485760))  # 10MB
    LOG_FILE_BACKUP_COUNT = int(os.environ.get("LOG_FILE_BACKUP_COUNT", 10))

    # Console and File Logging
    ENABLE_FILE_LOGGING = os.environ.get("ENABLE_FILE_LOGGING", "true").lower() == "true"
    ENABLE_CONSOLE_LOGGING = os.environ.get("ENABLE_CONSOLE_LOGGING", "true").lower() == "true"

    # Application Info
    APP_NAME = os.environ.get("APP_NAME", "Import Hub")
    APP_VERSION = os.environ.get("APP_VERSION", "0.1.0")


class DevelopmentMonitoringConfig(MonitoringConfig):
    """Development-specific monitoring configuration"""

    LOG_LEVEL = "DEBUG"
    LOG_FORMAT = "text"  # More readable in development
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = True


class ProductionMonitoringConfig(MonitoringConfig):
    """Production-specific monitoring configuration"""

    MONITORING_ENABLED = True
    LOG_LEVEL = "INFO"
    LOG_FORMAT = "json"  # Structured logging for production
    ENABLE_FILE_LOGGING = True
    ENABLE_CONSOLE_LOGGING = False  # Usually handled by container orchestration


class TestingMonitoringConfig(MonitoringConfig):
    """Testing-specific monitoring configuration"""

    MONITORING_ENABLED = False
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "text"
    ENABLE_FILE_LOGGING = False
    ENABLE_CONSOLE_LOGGING = False


class ImporterMonitoring:
    """Prometheus metric helpers for importer session API endpoints."""

    SESSIONS_LIST_COUNTER = Counter(
        "importer_sessions_list_requests_total",
        "Total import session list API requests.",
        labelnames=("status",),
    )
    SESSIONS_LIST_LATENCY = Histogram(
        "importer_sessions_list_request_seconds",
        "Latency histogram for import session list API.",
        labelnames=("status",),
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
    )
    SESSION_STATUS_COUNTER = Counter(
        "importer_session_status_requests_total",
        "Total import session status polls.",
        labelnames=("status",),
    )
    SESSION_STATUS_LATENCY = Histogram(
        "importer_session_status_request_seconds",
        "Latency histogram for import session status polls.",
        labelnames=("status",),
        buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2),
    )
    ERRORS_EXPORT_COUNTER = Counter(
        "importer_errors_export_requests_total",
        "Total failed-row export requests.",
        labelnames=("status",),
    )
    ERRORS_EXPORT_ROW_COUNT = Histogram(
        "importer_errors_export_row_count",
        "Row count of exported failed rows.",
        labelnames=("status",),
        buckets=(0, 1, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
    )

    @classmethod
    def record_sessions_list(cls, *, duration_seconds: float, status: str):
        cls.SESSIONS_LIST_COUNTER.labels(status=status).inc()
        cls.SESSIONS_LIST_LATENCY.labels(status=status).observe(max(duration_seconds, 0.0))

    @classmethod
    def record_session_status(cls, *, duration_seconds: float, status: str):
        cls.SESSION_STATUS_COUNTER.labels(status=status).inc()
        cls.SESSION_STATUS_LATENCY.labels(status=status).observe(max(duration_seconds, 0.0))

    @classmethod
    def record_errors_export(cls, *, status: str, row_count: int):
        cls.ERRORS_EXPORT_COUNTER.labels(status=status).inc()
        cls.ERRORS_EXPORT_ROW_COUNT.labels(status=status).observe(float(max(row_count, 0)))
