import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Process configuration read from the environment (and .env when present)."""

    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
        self.DATABASE_NAME = os.getenv("DATABASE_NAME", "furnishing_catalogue")

        self.JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
        self.JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

        self.AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
        self.AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
        self.AWS_REGION = os.getenv("AWS_REGION", "ap-south-1")
        self.S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME")
        self.CLOUDFRONT_DOMAIN = os.getenv("CLOUDFRONT_DOMAIN")
        self.UPLOAD_TMP_DIR = os.getenv("UPLOAD_TMP_DIR", os.path.join("uploads", "temp"))

        self.SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
        self.SMTP_USER = os.getenv("SMTP_USER") or os.getenv("EMAIL_USER")
        self.SMTP_PASS = os.getenv("SMTP_PASS") or os.getenv("EMAIL_PASS")
        self.FROM_NAME = os.getenv("FROM_NAME", "Furnishing Catalogue")
        self.FROM_EMAIL = os.getenv("FROM_EMAIL") or self.SMTP_USER or "no-reply@catalogue.local"
        self.OWNER_EMAIL = os.getenv("OWNER_EMAIL") or self.SMTP_USER

        self.CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.PORT = int(os.getenv("PORT", "8000"))


settings = Settings()
