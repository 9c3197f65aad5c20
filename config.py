"""
Application configuration: loaded once at startup.
"""

import os

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
DATA_API_TIMEOUT = float(os.getenv("DATA_API_TIMEOUT", "10"))

FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")

SESSION_TIMEOUT_HOURS = int(os.getenv("SESSION_TIMEOUT_HOURS", "24"))
ADMIN_ONLY = os.getenv("ADMIN_ONLY", "0") == "1"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))

PRODUCT_CATEGORIES = ("cosplay", "beauty")
MAX_PRODUCT_IMAGES = 5
PLACEHOLDER_IMAGE = "https://via.placeholder.com/60?text=No+Image"
