import logging
import os

from loguru import logger

# Isolate the physical profile database before any settings are loaded.
os.environ["SQLITE_DB_PATH"] = ":memory:"
os.environ.pop("SUPER_ADMIN_EMAIL", None)

# Globally mute application logs during testing; unhappy paths log loudly.
logger.disable("src")

logging.getLogger("asyncio").setLevel(logging.ERROR)
