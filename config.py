"""Configuration management using environment variables."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Local record store (SQLite, development)
DB_PATH = os.getenv("DB_PATH", "partnerships.db")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "partnerships.log")

# Hosted record store (PocketBase)
POCKETBASE_URL = os.getenv("POCKETBASE_URL", "")
POCKETBASE_TOKEN = os.getenv("POCKETBASE_TOKEN")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

# Automation webhook (n8n)
WEBHOOK_URL = os.getenv("WEBHOOK_URL")

# Reconciliation
FUZZY_MIN_SCORE = int(os.getenv("FUZZY_MIN_SCORE", "70"))
UPLOAD_BATCH_SIZE = int(os.getenv("UPLOAD_BATCH_SIZE", "50"))
UPLOAD_BATCH_DELAY = float(os.getenv("UPLOAD_BATCH_DELAY", "0.1"))
