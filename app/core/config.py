"""
Service Configuration
Database, identity provider and transaction settings
"""

import os

# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "learning_db")

# Transactions retried on TransientTransactionError
TRANSACTION_MAX_ATTEMPTS = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "3"))

# Sign-in providers accepted for learner endpoints (admins are exempt)
LEARNER_PROVIDERS = {
    p.strip() for p in os.getenv("LEARNER_PROVIDERS", "google.com").split(",") if p.strip()
}

# Header carrying the client idempotency key
IDEMPOTENCY_HEADER = "X-Idempotency-Key"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
