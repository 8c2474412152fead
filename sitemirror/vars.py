import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "site-mirror-proxy")

# Origin being mirrored, e.g. https://blog.example.com
TARGET_URL = os.environ.get("TARGET_URL", "https://targetUrl.com").rstrip("/")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
# "warn" is accepted as an alias of "warning"
LOG_LEVEL = "debug" if DEBUG else os.getenv("LOG_LEVEL", "info").lower()
if LOG_LEVEL == "warn":
    LOG_LEVEL = "warning"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Forces the scheme used for rewritten URLs; inferred from the request when empty
PROXY_SCHEME = os.getenv("PROXY_SCHEME", "").lower().rstrip(":/")
PROXY_TIMEOUT = int(os.environ.get("PROXY_TIMEOUT", "300"))
MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", str(50 * 1024 * 1024)))

# Path prefixes relayed as a stream without body rewriting
PASSTHROUGH_PREFIXES = [
    p.strip() for p in os.getenv("PASSTHROUGH_PREFIXES", "/v1").split(",") if p.strip()
]

LOGIN_PATH = os.getenv("LOGIN_PATH", "/wp-login.php")
LOGIN_ACTION_PARAM = os.getenv("LOGIN_ACTION_PARAM", "action")
LOGIN_ACTION_VALUE = os.getenv("LOGIN_ACTION_VALUE", "postpass")

STRIP_COOKIE_DOMAIN = os.getenv("STRIP_COOKIE_DOMAIN", "true").lower() == "true"

METRICS_PATH = os.getenv("METRICS_PATH", "/_mirror/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
