import os

APP_NAME = "GlobalMatch"
APP_URL = os.getenv("APP_URL", "https://globalmatch.app").rstrip("/")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@globalmatch.app")

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
ADMIN_EMAILS = [
    e.strip().lower()
    for e in os.getenv("ADMIN_EMAILS", "admin@globalmatch.app").split(",")
    if e.strip()
]

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    if o.strip()
]

JWT_SECRET = os.getenv("JWT_SECRET", "")
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "60"))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "30"))
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
MIN_SIGNUP_AGE = int(os.getenv("MIN_SIGNUP_AGE", "18"))

DISCOVER_DEFAULT_LIMIT = int(os.getenv("DISCOVER_DEFAULT_LIMIT", "20"))
DISCOVER_MAX_LIMIT = int(os.getenv("DISCOVER_MAX_LIMIT", "50"))
MAX_PROFILE_PHOTOS = int(os.getenv("MAX_PROFILE_PHOTOS", "6"))
CHAT_PAGE_SIZE = int(os.getenv("CHAT_PAGE_SIZE", "50"))
MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "2000"))

# Report escalation: reports of one type against one user inside the window.
ESCALATION_WINDOW_DAYS = int(os.getenv("ESCALATION_WINDOW_DAYS", "30"))
ESCALATION_HARASSMENT_BAN_THRESHOLD = int(os.getenv("ESCALATION_HARASSMENT_BAN_THRESHOLD", "5"))
ESCALATION_HARASSMENT_BAN_HOURS = int(os.getenv("ESCALATION_HARASSMENT_BAN_HOURS", "72"))
ESCALATION_CONTENT_REVIEW_THRESHOLD = int(os.getenv("ESCALATION_CONTENT_REVIEW_THRESHOLD", "3"))
ESCALATION_PERMANENT_BAN_THRESHOLD = int(os.getenv("ESCALATION_PERMANENT_BAN_THRESHOLD", "10"))
ESCALATION_WARNING_THRESHOLD = int(os.getenv("ESCALATION_WARNING_THRESHOLD", "2"))
DEFAULT_SUSPENSION_HOURS = int(os.getenv("DEFAULT_SUSPENSION_HOURS", "24"))

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "krw").lower()

GOOGLE_TRANSLATE_API_KEY = os.getenv("GOOGLE_TRANSLATE_API_KEY", "")
TRANSLATE_TIMEOUT_SECONDS = float(os.getenv("TRANSLATE_TIMEOUT_SECONDS", "5.0"))
TRANSLATION_CACHE_SIZE = int(os.getenv("TRANSLATION_CACHE_SIZE", "1000"))

FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH", "")

CALL_TOKEN_SECRET = os.getenv("CALL_TOKEN_SECRET", "")
CALL_TOKEN_TTL_SECONDS = int(os.getenv("CALL_TOKEN_TTL_SECONDS", "3600"))
CALL_INVITE_TTL_SECONDS = int(os.getenv("CALL_INVITE_TTL_SECONDS", "60"))

RL_AUTH_REGISTER_LIMIT = int(os.getenv("RL_AUTH_REGISTER_LIMIT", "20"))
RL_AUTH_LOGIN_LIMIT = int(os.getenv("RL_AUTH_LOGIN_LIMIT", "30"))
RL_AUTH_REFRESH_LIMIT = int(os.getenv("RL_AUTH_REFRESH_LIMIT", "120"))
RL_LIKE_LIMIT = int(os.getenv("RL_LIKE_LIMIT", "120"))
RL_MESSAGE_LIMIT = int(os.getenv("RL_MESSAGE_LIMIT", "120"))
RL_REPORT_LIMIT = int(os.getenv("RL_REPORT_LIMIT", "20"))
RL_TRANSLATE_LIMIT = int(os.getenv("RL_TRANSLATE_LIMIT", "120"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))

SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "no-reply@globalmatch.app")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(8 * 1024 * 1024)))
