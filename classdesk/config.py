import logging
import os

# ----------------------------
# Server
# ----------------------------
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "5000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ----------------------------
# Storage
# ----------------------------
REG_BACKEND = os.environ.get("REG_BACKEND", "sql").lower()  # sql|redis|memory
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./classdesk.db")
DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT = int(os.environ.get("DB_POOL_TIMEOUT", "30"))
# defaults to the pool size for postgres, 10 for sqlite
DB_GATE_LIMIT = os.environ.get("DB_GATE_LIMIT")
REDIS_URL = os.environ.get("REDIS_URL", "redis://127.0.0.1:6379")
REDIS_MAX_CONN = int(os.environ.get("REDIS_MAX_CONN", "64"))

# ----------------------------
# Payment gateway
# ----------------------------
GATEWAY = os.environ.get("GATEWAY", "mock").lower()  # razorpay|cashfree|mock
GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10"))

RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.environ.get("RAZORPAY_WEBHOOK_SECRET", "")

CASHFREE_APP_ID = os.environ.get("CASHFREE_APP_ID", "")
CASHFREE_SECRET_KEY = os.environ.get("CASHFREE_SECRET_KEY", "")
CASHFREE_WEBHOOK_SECRET = os.environ.get(
    "CASHFREE_WEBHOOK_SECRET", CASHFREE_SECRET_KEY
)
CASHFREE_ENVIRONMENT = os.environ.get("CASHFREE_ENVIRONMENT", "SANDBOX")
CASHFREE_API_VERSION = os.environ.get("CASHFREE_API_VERSION", "2023-08-01")
CASHFREE_BASE_URL = (
    "https://api.cashfree.com/pg"
    if CASHFREE_ENVIRONMENT.upper() == "PRODUCTION"
    else "https://sandbox.cashfree.com/pg"
)

MOCK_SECRET = os.environ.get("MOCK_SECRET", "supersecret")
MOCK_WEBHOOK_URL = os.environ.get(
    "MOCK_WEBHOOK_URL",
    f"http://localhost:{PORT}/api/mock-webhook"
)

PROGRAM_FEE = int(os.environ.get("PROGRAM_FEE", "9900"))  # paise
PROGRAM_CURRENCY = os.environ.get("PROGRAM_CURRENCY", "INR")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
UPI_ID = os.environ.get("UPI_ID", "9494100110@yesbank")

# ----------------------------
# Mail
# ----------------------------
EMAIL_USER = os.environ.get("EMAIL_USER", "")
EMAIL_PASSWORD = os.environ.get("EMAIL_PASSWORD", "")
SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "465"))
SMTP_USE_TLS = os.environ.get("SMTP_USE_TLS", "true").lower() == "true"
SMTP_TIMEOUT_SECONDS = int(os.environ.get("SMTP_TIMEOUT_SECONDS", "10"))
OPERATOR_EMAIL = os.environ.get("OPERATOR_EMAIL", EMAIL_USER)
MAIL_BACKEND = os.environ.get(
    "MAIL_BACKEND", "smtp" if EMAIL_USER else "console"
).lower()  # smtp|console

EVENT_NAME = os.environ.get("EVENT_NAME", "Life-Changing 3-Hour Masterclass")
EVENT_DATE = os.environ.get("EVENT_DATE", "April 19th")
EVENT_TIME = os.environ.get("EVENT_TIME", "11:30 AM")
EVENT_LOCATION = os.environ.get(
    "EVENT_LOCATION", "Live on Zoom (Interactive + Reflective Exercises)"
)
ORGANIZER_NAME = os.environ.get("ORGANIZER_NAME", "Inspiring Shereen")
ORGANIZER_TAGLINE = os.environ.get(
    "ORGANIZER_TAGLINE", "Life Coach | Shaping Lives With Holistic Success"
)
# signature on contact-form acknowledgements
CONTACT_SIGNATURE_NAME = os.environ.get(
    "CONTACT_SIGNATURE_NAME", "Mrs. Shereen"
)
CONTACT_SIGNATURE_TITLE = os.environ.get(
    "CONTACT_SIGNATURE_TITLE", "Phonics Teaching Specialist"
)

# ----------------------------
# Admin
# ----------------------------
SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-change-me")
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "supasecret")


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
