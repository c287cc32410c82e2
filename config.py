import os

# Identity provider token verification
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ALGORITHM = "HS256"

# Document database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Blob store for progress-log attachments
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_UPLOAD_URL = os.getenv("PUBLIC_UPLOAD_URL", "/uploads")

NOTIFICATION_LIMIT = int(os.getenv("NOTIFICATION_LIMIT", 20))
ACTIVITY_WINDOW_DAYS = int(os.getenv("ACTIVITY_WINDOW_DAYS", 7))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

PORT = int(os.getenv("PORT", 8000))
