import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database
# Default to local SQLite, but allow override for AWS RDS (Postgres)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///finance_tracker.db")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

# Exports (local folder, or S3 when a bucket is configured)
S3_BUCKET = os.getenv("S3_BUCKET")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
EXPORT_FOLDER = os.getenv("EXPORT_FOLDER", "exports")

# API server
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8001"))
