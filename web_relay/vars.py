import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "web-relay")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

RELAY_PREFIX = "/" + os.environ.get("RELAY_PREFIX", "/proxy").strip("/")
RELAY_TIMEOUT = float(os.environ.get("RELAY_TIMEOUT", "30"))
RELAY_USER_AGENT = os.environ.get("RELAY_USER_AGENT", "Web-Proxy-Server/1.0")
# Certificate checks are off unless explicitly enabled
RELAY_VERIFY_TLS = os.getenv("RELAY_VERIFY_TLS", "false").lower() == "true"

CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
