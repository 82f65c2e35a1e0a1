# config/base.py
import os
from datetime import timedelta


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int_list(value, *, minimum=1, maximum=100):
    """
    Parse a comma-separated list of integers with optional bounds.
    """

    if not value:
        return []

    parsed: list[int] = []
    for raw_item in value.split(","):
        item = raw_item.strip()
        if not item:
            continue
        try:
            number = int(item)
        except ValueError:
            continue
        if number < minimum or number > maximum:
            continue
        if number not in parsed:
            parsed.append(number)
    return parsed


def _parse_extension_list(value):
    """Parse a comma-separated extension list into a lower-case tuple without dots."""
    if not value:
        return ()
    extensions = []
    for raw_item in value.split(","):
        item = raw_item.strip().lower().lstrip(".")
        if item and item not in extensions:
            extensions.append(item)
    return tuple(extensions)


def _int_env(name, default, *, minimum=None):
    try:
        value = int(os.environ.get(name, str(default)))
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return minimum
    return value


def _float_env(name, default, *, minimum=None):
    try:
        value = float(os.environ.get(name, str(default)))
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return minimum
    return value


class Config:
    # SECRET_KEY must be set via environment variable for security
    # Generate with: python -c "import secrets; print(secrets.token_hex(32))"
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    # For development, use a default but it's not secure
    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY environment variable before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Importer configuration
    IMPORTER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_ENABLED"), default=True)
    IMPORTER_WORKER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_WORKER_ENABLED"), default=False)
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")

    IMPORTER_UPLOAD_DIR = os.environ.get("IMPORTER_UPLOAD_DIR")
    IMPORTER_MAX_UPLOAD_MB = _int_env("IMPORTER_MAX_UPLOAD_MB", 10, minimum=1)
    IMPORTER_ALLOWED_EXTENSIONS = _parse_extension_list(
        os.environ.get("IMPORTER_ALLOWED_EXTENSIONS", "csv,xlsx")
    ) or ("csv", "xlsx")
    # "filesystem" scans the upload folders when the database has no record of a file
    IMPORTER_FILE_LOOKUP_FALLBACK = os.environ.get("IMPORTER_FILE_LOOKUP_FALLBACK", "filesystem").strip().lower()
    IMPORTER_BATCH_SIZE = _int_env("IMPORTER_BATCH_SIZE", 100, minimum=1)
    IMPORTER_STAGING_FLUSH_SIZE = _int_env("IMPORTER_STAGING_FLUSH_SIZE", 500, minimum=1)
    IMPORTER_PREVIEW_ROWS = _int_env("IMPORTER_PREVIEW_ROWS", 10, minimum=1)

    _parsed_page_sizes = _parse_int_list(
        os.environ.get("IMPORTER_SESSIONS_PAGE_SIZES", "20,50,100"), minimum=5, maximum=500
    )
    if not _parsed_page_sizes:
        _parsed_page_sizes = [20, 50, 100]
    IMPORTER_SESSIONS_PAGE_SIZE_DEFAULT = _int_env("IMPORTER_SESSIONS_PAGE_SIZE_DEFAULT", _parsed_page_sizes[0])
    if IMPORTER_SESSIONS_PAGE_SIZE_DEFAULT not in _parsed_page_sizes:
        _parsed_page_sizes.insert(0, IMPORTER_SESSIONS_PAGE_SIZE_DEFAULT)
    IMPORTER_SESSIONS_PAGE_SIZES = tuple(sorted(set(_parsed_page_sizes)))

    # External workflow engine
    WORKFLOW_BASE_URL = os.environ.get("WORKFLOW_BASE_URL", "http://localhost:5678").rstrip("/")
    WORKFLOW_API_KEY = os.environ.get("WORKFLOW_API_KEY")
    WORKFLOW_WEBHOOK_PATH = os.environ.get("WORKFLOW_WEBHOOK_PATH", "master-import-processor").strip("/")
    WORKFLOW_TIMEOUT_SECONDS = _float_env("WORKFLOW_TIMEOUT_SECONDS", 30.0, minimum=1.0)
    WORKFLOW_MAX_ATTEMPTS = _int_env("WORKFLOW_MAX_ATTEMPTS", 3, minimum=1)
    WORKFLOW_RETRY_BASE_DELAY = _float_env("WORKFLOW_RETRY_BASE_DELAY", 1.0, minimum=0.0)
    WORKFLOW_HEALTH_TIMEOUT_SECONDS = _float_env("WORKFLOW_HEALTH_TIMEOUT_SECONDS", 5.0, minimum=0.5)
    # Public base URL the workflow engine uses to reach this service
    API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000").rstrip("/")
    WORKFLOW_CALLBACK_URL = os.environ.get("WORKFLOW_CALLBACK_URL")

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path = os.path.join(instance_path, "import_hub_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    WORKFLOW_BASE_URL = "http://workflow.test"
    WORKFLOW_API_KEY = "test-workflow-key"
    API_BASE_URL = "http://import-hub.test"
    WORKFLOW_RETRY_BASE_DELAY = 0.0


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SESSION_COOKIE_SECURE = True  # Secure cookies in production
