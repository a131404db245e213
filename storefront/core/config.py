import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Storefront Backend")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# "mongo" for a real deployment, "memory" for local demos and tests
STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo")
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "storefront")

SECRET_KEY = os.getenv("SECRET_KEY", "changeme")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

SHIPPING_FEE = Decimal(os.getenv("SHIPPING_FEE", "10"))
ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "MM")
ORDER_NUMBER_MAX_ATTEMPTS = int(os.getenv("ORDER_NUMBER_MAX_ATTEMPTS", "5"))
STATUS_UPDATE_MAX_ATTEMPTS = int(os.getenv("STATUS_UPDATE_MAX_ATTEMPTS", "3"))
ADAPTER_MAX_ATTEMPTS = int(os.getenv("ADAPTER_MAX_ATTEMPTS", "3"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
