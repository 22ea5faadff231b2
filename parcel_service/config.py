import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./parcels.db")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd").lower()

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173").rstrip("/")
SUCCESS_URL = f"{CLIENT_URL}/dashboard/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
CANCEL_URL = f"{CLIENT_URL}/dashboard/payment-cancelled"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")


def webhook_secret():
    return os.getenv("STRIPE_WEBHOOK_SECRET")
