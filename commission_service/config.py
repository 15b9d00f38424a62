import os
from decimal import Decimal

# Get settings from environment variables.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./commission.db")

# Which store backs the API: "sql" (SQLAlchemy) or "local" (JSON document on disk).
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sql")
LOCAL_STORE_PATH = os.getenv("LOCAL_STORE_PATH", "./commission_store.json")

# Publishing is disabled unless a RabbitMQ host is configured.
RABBITMQ_HOST = os.getenv("RABBITMQ_HOST")
RABBITMQ_EXCHANGE = os.getenv("RABBITMQ_EXCHANGE", "events")

# Unknown brand names referenced by an order are created on the fly when enabled.
AUTO_CREATE_BRANDS = os.getenv("AUTO_CREATE_BRANDS", "1").strip() in {"1", "true", "True", "yes"}

DEFAULT_COMMISSION_PERCENTAGE = Decimal(os.getenv("DEFAULT_COMMISSION_PERCENTAGE", "10"))
DEFAULT_COMPANY_NAME = "My Commission System"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
