import os

# The application engine is built at import time; keep it off the working
# directory. Each test case builds its own file database.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
