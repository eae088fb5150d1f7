"""
Misab Storefront - Centralized Configuration
==============================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database (durable local cache)
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront_cache.db")


# ==========================================
# 🛍️ Shopify
# ==========================================
SHOPIFY_SHOP_DOMAIN = os.getenv("SHOPIFY_SHOP_DOMAIN", "")
SHOPIFY_STOREFRONT_ACCESS_TOKEN = os.getenv("SHOPIFY_STOREFRONT_ACCESS_TOKEN", "")
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-10")

# Admin API (order creation after payment)
SHOPIFY_STORE_URL = os.getenv("SHOPIFY_STORE_URL", "")
SHOPIFY_ADMIN_ACCESS_TOKEN = os.getenv("SHOPIFY_ADMIN_ACCESS_TOKEN", "")


# ==========================================
# 🔥 Firebase Realtime Database
# ==========================================
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL", "")
FIREBASE_AUTH_TOKEN = os.getenv("FIREBASE_AUTH_TOKEN", "")


# ==========================================
# 💳 Payment Gateway
# ==========================================
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")


# ==========================================
# 🔐 Session
# ==========================================
SESSION_COOKIE = os.getenv("SESSION_COOKIE", "cart_session")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")

# Timeout (seconds) for every outbound HTTP call
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT") or "15")
