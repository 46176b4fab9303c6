"""Runtime configuration read from the environment."""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "chiya")

PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Local zone of the staff viewing the dashboard; dates are bucketed in it.
DASHBOARD_TIMEZONE = os.getenv("DASHBOARD_TIMEZONE", "Asia/Kathmandu")
RECENT_ORDER_MINUTES = int(os.getenv("RECENT_ORDER_MINUTES", 10))
DASHBOARD_TICK_SECONDS = float(os.getenv("DASHBOARD_TICK_SECONDS", 30))

# Carts untouched for this long are dropped.
CART_IDLE_MINUTES = int(os.getenv("CART_IDLE_MINUTES", 120))

STAFF_EMAIL = os.getenv("STAFF_EMAIL")
STAFF_PASSWORD = os.getenv("STAFF_PASSWORD")

CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "रू")
