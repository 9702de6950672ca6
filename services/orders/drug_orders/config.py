"""
Configuration for the drug orders service.

Every value can be overridden through an environment variable of the same name.
"""
import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./drug_orders.db")

# JWT settings (must match the identity service that issues tokens)
SECRET_KEY = os.getenv("SECRET_KEY", "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# Webhooks
WEBHOOK_URLS = [url.strip() for url in os.getenv("WEBHOOK_URLS", "").split(",") if url.strip()]
WEBHOOK_TIMEOUT = float(os.getenv("WEBHOOK_TIMEOUT", "5.0"))  # seconds

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "")

# Business limits
MAX_ITEMS_PER_ORDER = int(os.getenv("MAX_ITEMS_PER_ORDER", "100"))
MAX_ITEM_QUANTITY = int(os.getenv("MAX_ITEM_QUANTITY", "10000"))
MAX_UNIT_PRICE = int(os.getenv("MAX_UNIT_PRICE", "1000000"))
# Largest order total accepted; must stay below the 14 integer digits of orders.total_amount
MAX_ORDER_TOTAL = int(os.getenv("MAX_ORDER_TOTAL", "1000000000000"))

# Pagination
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
