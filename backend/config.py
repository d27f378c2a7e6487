import os

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "rental_marketplace")

# Session tokens
SECRET_KEY = os.getenv("SECRET_KEY", "development-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
SESSION_MAX_AGE_MINUTES = int(os.getenv("SESSION_MAX_AGE_MINUTES", 60 * 24))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session_token")
LOGIN_PATH = os.getenv("LOGIN_PATH", "/login")

FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

# Checkout
TAX_RATE = float(os.getenv("TAX_RATE", 0.05))
LATE_FEE_PER_DAY = float(os.getenv("LATE_FEE_PER_DAY", 100))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
