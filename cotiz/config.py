import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "cotiz.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-cotiz")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    APP_PUBLIC_URL = os.environ.get("APP_PUBLIC_URL", "http://localhost:5000")
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)
    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    PUBLIC_RATE_LIMIT_MAX_REQUESTS = _int_env("PUBLIC_RATE_LIMIT_MAX_REQUESTS", 60)

    # local: ports backed by this database; remote: hosted edge functions.
    GATEWAY_MODE = os.environ.get("GATEWAY_MODE", "local")
    EDGE_FUNCTIONS_URL = os.environ.get("EDGE_FUNCTIONS_URL")
    EDGE_FUNCTIONS_KEY = os.environ.get("EDGE_FUNCTIONS_KEY")
    EDGE_TIMEOUT_SECONDS = _int_env("EDGE_TIMEOUT_SECONDS", 20)

    UPLOAD_DIR = os.environ.get("UPLOAD_DIR") or os.path.join(BASE_DIR, "storage")
    PUBLIC_FILES_BASE_URL = os.environ.get("PUBLIC_FILES_BASE_URL", "/files")
    MAX_UPLOAD_BYTES = _int_env("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)

    CEP_LOOKUP_URL = os.environ.get("CEP_LOOKUP_URL", "https://viacep.com.br/ws")
    CEP_TIMEOUT_SECONDS = _int_env("CEP_TIMEOUT_SECONDS", 5)
    CEP_MERGE_POLICY = os.environ.get("CEP_MERGE_POLICY", "keep_user_edits")

    QUOTE_TOKEN_TTL_DAYS = _int_env("QUOTE_TOKEN_TTL_DAYS", 30)
    ELIGIBILITY_MAX_WORKERS = _int_env("ELIGIBILITY_MAX_WORKERS", 8)
    PLATFORM_COMMISSION_PERCENT = _int_env("PLATFORM_COMMISSION_PERCENT", 5)
    LIQUIDITY_REFRESH_SECONDS = _int_env("LIQUIDITY_REFRESH_SECONDS", 60)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
        if env == "production" and self.SECRET_KEY == "dev-secret-cotiz":
            raise RuntimeError("SECRET_KEY insegura para producao.")
        if env == "production" and self.GATEWAY_MODE == "remote" and not self.EDGE_FUNCTIONS_URL:
            raise RuntimeError("EDGE_FUNCTIONS_URL nao definida para GATEWAY_MODE=remote.")
