import os

DATABASE_URL = os.getenv("LIBRARY_DATABASE_URL", "sqlite:///./library.db")

SECRET_KEY = os.getenv("LIBRARY_SECRET_KEY", "dev-library-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("LIBRARY_TOKEN_MINUTES", "30"))

LOAN_DAYS = int(os.getenv("LIBRARY_LOAN_DAYS", "14"))
DUE_SOON_DAYS = 3

# Hard ceiling for the startup task before the app serves anyway
BOOTSTRAP_TIMEOUT = float(os.getenv("LIBRARY_BOOTSTRAP_TIMEOUT", "3"))

READ_RETRY_ATTEMPTS = 3
READ_RETRY_BASE_DELAY = 0.2

ADMIN_USERNAME = os.getenv("LIBRARY_ADMIN_USERNAME", "administrator")
ADMIN_EMAIL = os.getenv("LIBRARY_ADMIN_EMAIL", "admin@library.local")
ADMIN_PASSWORD = os.getenv("LIBRARY_ADMIN_PASSWORD", "administrator123")

LOG_LEVEL = os.getenv("LIBRARY_LOG_LEVEL", "INFO")
