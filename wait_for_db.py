"""Block until the configured Postgres accepts connections. SQLite needs no wait."""
import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

from storefront.core.config import settings
from storefront.core.log import configure_logging

logger = logging.getLogger("wait_for_db")


def wait(database_url: str, timeout_s: int) -> None:
    if not database_url.startswith("postgres"):
        logger.info("database is %s; nothing to wait for", database_url.split(":", 1)[0])
        return

    # SQLAlchemy URL may carry a driver suffix
    p = urlparse(database_url.replace("postgresql+psycopg2://", "postgresql://"))
    dbname = (p.path or "/storefront").lstrip("/") or "storefront"
    logger.info("waiting for Postgres at %s:%s db=%s (timeout=%ss)", p.hostname, p.port or 5432, dbname, timeout_s)

    start = time.time()
    while True:
        try:
            conn = psycopg2.connect(host=p.hostname or "db", port=p.port or 5432, user=p.username,
                                    password=p.password, dbname=dbname)
            conn.close()
            logger.info("Postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                logger.error("timed out waiting for DB: %s", e)
                raise
            time.sleep(1)


configure_logging()
wait(settings.DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
