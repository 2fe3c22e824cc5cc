import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "devsecret"


def _flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def load_config():
    return {
        "DATABASE_URL": os.getenv("DATABASE_URL", "sqlite:///artshop.db"),
        "JWT_SECRET": os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        "ARTIST_EMAIL": os.getenv("ARTIST_EMAIL", ""),
        "ARTIST_PASSWORD": os.getenv("ARTIST_PASSWORD", ""),
        "ALLOWED_ORIGINS": os.getenv("ALLOWED_ORIGINS", ""),
        "FRONTEND_URL": os.getenv("FRONTEND_URL", "http://localhost:5173"),
        "BACKEND_URL": os.getenv("BACKEND_URL", "http://localhost:5000"),
        "LOG_FILE": os.getenv("LOG_FILE", "app.log"),

        # Storage: GitHub repository or Backblaze B2 (S3 API)
        "USE_GITHUB_STORAGE": _flag("USE_GITHUB_STORAGE"),
        "B2_REGION": os.getenv("B2_REGION", "us-east-005"),
        "B2_ENDPOINT": os.getenv("B2_ENDPOINT", "https://s3.us-east-005.backblazeb2.com"),
        "B2_BUCKET_NAME": os.getenv("B2_BUCKET_NAME", ""),
        "B2_APPLICATION_KEY_ID": os.getenv("B2_APPLICATION_KEY_ID", ""),
        "B2_APPLICATION_KEY": os.getenv("B2_APPLICATION_KEY", ""),
        "SIGNED_URL_EXPIRES": int(os.getenv("SIGNED_URL_EXPIRES", "3600")),
        "GITHUB_TOKEN": os.getenv("GITHUB_TOKEN", ""),
        "GITHUB_REPO_OWNER": os.getenv("GITHUB_REPO_OWNER", ""),
        "GITHUB_REPO_NAME": os.getenv("GITHUB_REPO_NAME", ""),
        "GITHUB_REPO_BRANCH": os.getenv("GITHUB_REPO_BRANCH", "main"),
        "IMAGE_CACHE_DIR": os.getenv("IMAGE_CACHE_DIR", os.path.join(os.getcwd(), ".cache", "github-images")),

        # Payments
        "STRIPE_SECRET_KEY": os.getenv("STRIPE_SECRET_KEY", ""),
        "STRIPE_WEBHOOK_SECRET": os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        "CURRENCY": os.getenv("CURRENCY", "INR"),
        "DELIVERY_CHARGE_CENTS": int(os.getenv("DELIVERY_CHARGE_CENTS", "10000")),

        # Notifications
        "SMTP_HOST": os.getenv("SMTP_HOST", ""),
        "SMTP_PORT": int(os.getenv("SMTP_PORT", "587")),
        "SMTP_USER": os.getenv("SMTP_USER", ""),
        "SMTP_PASS": os.getenv("SMTP_PASS", ""),
        "EMAIL_FROM": os.getenv("EMAIL_FROM") or os.getenv("SMTP_USER") or "no-reply@localhost",
        "ADMIN_EMAIL": os.getenv("ADMIN_EMAIL") or os.getenv("SMTP_USER", ""),
        "TELEGRAM_BOT_TOKEN": os.getenv("TELEGRAM_BOT_TOKEN", ""),
        "TELEGRAM_CHAT_ID": os.getenv("TELEGRAM_CHAT_ID", ""),
        "SLACK_WEBHOOK_URL": os.getenv("SLACK_WEBHOOK_URL", ""),

        # Google sign-in
        "GOOGLE_CLIENT_ID": os.getenv("GOOGLE_CLIENT_ID", ""),
        "GOOGLE_CLIENT_SECRET": os.getenv("GOOGLE_CLIENT_SECRET", ""),
    }
