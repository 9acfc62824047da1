import os

# Keep the app-level engine off the working directory and the background sweep off during tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RUN_REMINDER_SCHEDULER", "0")
os.environ.setdefault("TZ", "UTC")
