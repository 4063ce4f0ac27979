import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_ledger.db")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS", "*")
ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",") if origin.strip()
]

# Serializable transactions are retried on serialization failure only
TRANSACTION_MAX_ATTEMPTS = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "3"))

# Guest access tokens
ACCESS_TOKEN_BYTES = 32
ACCESS_TOKEN_LENGTH = 43
TOKEN_EXPIRATION_DAYS = int(os.getenv("TOKEN_EXPIRATION_DAYS", "30"))
TOKEN_EXTENDED_EXPIRATION_DAYS = int(os.getenv("TOKEN_EXTENDED_EXPIRATION_DAYS", "3650"))

# Rate limiting
TOKEN_VERIFY_MAX_CALLS = int(os.getenv("TOKEN_VERIFY_MAX_CALLS", "10"))
TOKEN_VERIFY_WINDOW_SECONDS = float(os.getenv("TOKEN_VERIFY_WINDOW_SECONDS", "60"))
RATE_LIMIT_MAX_KEYS = int(os.getenv("RATE_LIMIT_MAX_KEYS", "10000"))

# Booking defaults, used when a unit's settings leave them unset
DEFAULT_DEPOSIT_PERCENTAGE = int(os.getenv("DEFAULT_DEPOSIT_PERCENTAGE", "20"))
DEFAULT_CANCELLATION_DEADLINE_HOURS = int(os.getenv("DEFAULT_CANCELLATION_DEADLINE_HOURS", "48"))
DEFAULT_MAX_GUESTS = int(os.getenv("DEFAULT_MAX_GUESTS", "10"))
DEFAULT_MIN_STAY_NIGHTS = int(os.getenv("DEFAULT_MIN_STAY_NIGHTS", "1"))
DEFAULT_PAYMENT_DEADLINE_DAYS = int(os.getenv("DEFAULT_PAYMENT_DEADLINE_DAYS", "3"))

# Unpaid card bookings hold their dates only while checkout is in progress
STRIPE_PAYMENT_HOLD_MINUTES = int(os.getenv("STRIPE_PAYMENT_HOLD_MINUTES", "15"))

# External calendar sync
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "5"))
SYNC_INITIAL_RETRY_DELAY_SECONDS = int(os.getenv("SYNC_INITIAL_RETRY_DELAY_SECONDS", "60"))
SYNC_BACKOFF_BASE = int(os.getenv("SYNC_BACKOFF_BASE", "2"))
SYNC_BACKOFF_UNIT_SECONDS = int(os.getenv("SYNC_BACKOFF_UNIT_SECONDS", "60"))
SYNC_MAX_BACKOFF_SECONDS = int(os.getenv("SYNC_MAX_BACKOFF_SECONDS", "3600"))
SYNC_RETRY_INTERVAL_SECONDS = int(os.getenv("SYNC_RETRY_INTERVAL_SECONDS", "300"))
SYNC_RETRY_BATCH_SIZE = int(os.getenv("SYNC_RETRY_BATCH_SIZE", "50"))
SYNC_RETRY_ITEM_DELAY_SECONDS = float(os.getenv("SYNC_RETRY_ITEM_DELAY_SECONDS", "1"))
SYNC_DISPATCH_WORKERS = int(os.getenv("SYNC_DISPATCH_WORKERS", "4"))
SYNC_SCHEDULER_ENABLED = os.getenv("SYNC_SCHEDULER_ENABLED", "true").lower() == "true"
CREDENTIAL_REFRESH_MARGIN_SECONDS = int(os.getenv("CREDENTIAL_REFRESH_MARGIN_SECONDS", "300"))
CREDENTIAL_CACHE_TTL_SECONDS = int(os.getenv("CREDENTIAL_CACHE_TTL_SECONDS", "3600"))
PLATFORM_REQUEST_TIMEOUT_SECONDS = float(os.getenv("PLATFORM_REQUEST_TIMEOUT_SECONDS", "10"))

# Secrets
CREDENTIAL_ENCRYPTION_KEY = os.getenv("CREDENTIAL_ENCRYPTION_KEY")
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")

BOOKING_COM_API_URL = os.getenv(
    "BOOKING_COM_API_URL", "https://distribution-xml.booking.com/2.3/json"
)
BOOKING_COM_TOKEN_URL = os.getenv(
    "BOOKING_COM_TOKEN_URL",
    "https://connectivity-authentication.booking.com/token-based-authentication/exchange",
)
BOOKING_COM_CLIENT_ID = os.getenv("BOOKING_COM_CLIENT_ID", "")
BOOKING_COM_CLIENT_SECRET = os.getenv("BOOKING_COM_CLIENT_SECRET", "")

AIRBNB_API_URL = os.getenv("AIRBNB_API_URL", "https://api.airbnb.com/v2")
AIRBNB_TOKEN_URL = os.getenv("AIRBNB_TOKEN_URL", "https://www.airbnb.com/oauth2/token")
AIRBNB_CLIENT_ID = os.getenv("AIRBNB_CLIENT_ID", "")
AIRBNB_CLIENT_SECRET = os.getenv("AIRBNB_CLIENT_SECRET", "")
