import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass

APP_NAME = os.getenv("APP_NAME", "API Marketplace")

# Payments (Stripe REST)
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com").rstrip("/")
STRIPE_SECRET_KEY = (os.getenv("STRIPE_SECRET_KEY", "") or "").strip().strip('"').strip("'")
PAYMENT_CURRENCY = (os.getenv("PAYMENT_CURRENCY", "inr") or "inr").strip().lower()

# Listing prices are stored in major units; the processor is charged in minor units.
MINOR_UNITS_PER_MAJOR = int(os.getenv("MINOR_UNITS_PER_MAJOR", "100"))
MIN_PAID_PRICE = float(os.getenv("MIN_PAID_PRICE", "50"))
MAX_PAID_PRICE = float(os.getenv("MAX_PAID_PRICE", "1000000"))
PROCESSOR_MIN_AMOUNT = int(os.getenv("PROCESSOR_MIN_AMOUNT", str(int(MIN_PAID_PRICE * MINOR_UNITS_PER_MAJOR))))

# Outbound fetches (scraper, test proxy, breach check)
SCRAPE_TIMEOUT_SEC = float(os.getenv("SCRAPE_TIMEOUT_SEC", "10"))
PROXY_TIMEOUT_SEC = float(os.getenv("PROXY_TIMEOUT_SEC", "15"))
PWNED_RANGE_URL = os.getenv("PWNED_RANGE_URL", "https://api.pwnedpasswords.com/range").rstrip("/")
OUTBOUND_ALLOWED_HOSTS = [h.strip().lower() for h in (os.getenv("OUTBOUND_ALLOWED_HOSTS", "").split(",") if os.getenv("OUTBOUND_ALLOWED_HOSTS") else []) if h.strip()]

# Rate limits (requests per window)
# Direct peers allowed to report the client IP via X-Forwarded-For (comma separated)
TRUSTED_PROXIES = [p.strip() for p in os.getenv("TRUSTED_PROXIES", "").split(",") if p.strip()]
SUBMIT_LIMIT_PER_HOUR = int(os.getenv("SUBMIT_LIMIT_PER_HOUR", "20"))
SCRAPE_LIMIT_PER_MINUTE = int(os.getenv("SCRAPE_LIMIT_PER_MINUTE", "30"))
PROXY_LIMIT_PER_MINUTE = int(os.getenv("PROXY_LIMIT_PER_MINUTE", "20"))
PWNED_LIMIT_PER_MINUTE = int(os.getenv("PWNED_LIMIT_PER_MINUTE", "20"))

# Browser origins allowed to call the API (comma separated)
ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]
# Wildcard patterns are ignored
_origin_regex = (os.getenv("ALLOWED_ORIGINS_REGEX") or "").strip()
ALLOWED_ORIGINS_REGEX = _origin_regex if _origin_regex and _origin_regex not in (".*", "^.*$", ".+") else None

# Catalog browser
CATEGORY_PREVIEW_COUNT = int(os.getenv("CATEGORY_PREVIEW_COUNT", "9"))
SUGGESTION_LIMIT = int(os.getenv("SUGGESTION_LIMIT", "8"))

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("apimarket")
