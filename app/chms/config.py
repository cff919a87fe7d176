import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    storage_backend: str
    storage_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_from_email: str
    smtp_from_name: str

    sms_provider: str
    sms_sender_id: str
    hubtel_sender: str
    hubtel_client_id: str
    hubtel_client_secret: str
    textme_sender: str
    textme_api_key: str
    generic_sms_url: str
    generic_sms_method: str
    generic_sms_headers: str
    generic_sms_body: str

    rate_limit_dir: str
    login_rate_limit: int
    login_rate_window: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///chms.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_dir=_getenv("STORAGE_DIR", os.path.join(os.getcwd(), "storage")),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        smtp_host=_getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_pass=_getenv("SMTP_PASS", ""),
        smtp_from_email=_getenv("SMTP_FROM_EMAIL", "no-reply@alivechms.org"),
        smtp_from_name=_getenv("SMTP_FROM_NAME", "AliveChMS"),
        sms_provider=_getenv("SMS_PROVIDER", "hubtel").lower(),
        sms_sender_id=_getenv("SMS_SENDER_ID", "AliveChMS"),
        hubtel_sender=_getenv("HUBTEL_SENDER", "AliveChMS"),
        hubtel_client_id=_getenv("HUBTEL_CLIENT_ID", ""),
        hubtel_client_secret=_getenv("HUBTEL_CLIENT_SECRET", ""),
        textme_sender=_getenv("TEXTME_SENDER", "AliveChMS"),
        textme_api_key=_getenv("TEXTME_API_KEY", ""),
        generic_sms_url=_getenv("GENERIC_SMS_URL", ""),
        generic_sms_method=_getenv("GENERIC_SMS_METHOD", "POST").upper(),
        generic_sms_headers=os.environ.get("GENERIC_SMS_HEADERS") or "",
        generic_sms_body=os.environ.get("GENERIC_SMS_BODY") or "",
        rate_limit_dir=_getenv("RATE_LIMIT_DIR", os.path.join(os.getcwd(), "cache", "rate_limits")),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        login_rate_window=_getenv_int("LOGIN_RATE_WINDOW", 300),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_DIR": s.storage_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # outbound email
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASS": s.smtp_pass,
        "SMTP_FROM_EMAIL": s.smtp_from_email,
        "SMTP_FROM_NAME": s.smtp_from_name,
        # outbound sms
        "SMS_PROVIDER": s.sms_provider,
        "SMS_SENDER_ID": s.sms_sender_id,
        "HUBTEL_SENDER": s.hubtel_sender,
        "HUBTEL_CLIENT_ID": s.hubtel_client_id,
        "HUBTEL_CLIENT_SECRET": s.hubtel_client_secret,
        "TEXTME_SENDER": s.textme_sender,
        "TEXTME_API_KEY": s.textme_api_key,
        "GENERIC_SMS_URL": s.generic_sms_url,
        "GENERIC_SMS_METHOD": s.generic_sms_method,
        "GENERIC_SMS_HEADERS": s.generic_sms_headers,
        "GENERIC_SMS_BODY": s.generic_sms_body,
        # rate limiting
        "RATE_LIMIT_DIR": s.rate_limit_dir,
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "LOGIN_RATE_WINDOW": s.login_rate_window,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # member photo uploads (5MB)
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
    }
