import os

# ✅ Runtime
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./konnectsphere.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"
SEED_PLANS_ON_STARTUP = os.getenv("SEED_PLANS_ON_STARTUP", "1") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "accessToken")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "0") == "1"
PASSWORD_RESET_EXPIRY_MINUTES = int(os.getenv("PASSWORD_RESET_EXPIRY_MINUTES", "60"))

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# ✅ SMTP
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS") or os.getenv("SMTP_PASSWORD")
SMTP_FROM = os.getenv("SMTP_FROM", "no-reply@konnectsphere.com")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "KonnectSphere")

# ✅ Media storage (S3-compatible)
MEDIA_BUCKET = os.getenv("MEDIA_BUCKET")
MEDIA_ENDPOINT_URL = os.getenv("MEDIA_ENDPOINT_URL")
MEDIA_ACCESS_KEY_ID = os.getenv("MEDIA_ACCESS_KEY_ID")
MEDIA_SECRET_ACCESS_KEY = os.getenv("MEDIA_SECRET_ACCESS_KEY")
MEDIA_REGION = os.getenv("MEDIA_REGION", "auto")
MEDIA_PUBLIC_BASE_URL = os.getenv("MEDIA_PUBLIC_BASE_URL")

# ✅ Scheduled jobs
ENABLE_SCHEDULER = os.getenv("ENABLE_SCHEDULER", "1") == "1"
