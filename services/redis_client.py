import logging
import time

import redis

from config import REDIS_URL

# ---------------------------------------------------------
# LOGGING
# ---------------------------------------------------------
logger = logging.getLogger("api.redis")

_client = None


# ---------------------------------------------------------
# LAZY INIT
# ---------------------------------------------------------
def get_redis_client(url: str = REDIS_URL):
    global _client
    if _client is not None:
        return _client
    if not url:
        raise RuntimeError("REDIS_URL not set")

    logger.info("redis_client_init url=%s", url)
    client = redis.from_url(url, decode_responses=True)

    # ---------------------------------------------------------
    # CONNECTION DIAGNOSTICS
    # ---------------------------------------------------------
    try:
        t0 = time.time()
        pong = client.ping()
        ms = int((time.time() - t0) * 1000)
        logger.info("redis_connected ping=%s latency_ms=%s", pong, ms)
    except redis.RedisError as e:
        logger.error("redis_initial_ping_failed error=%s", e)

    _client = client
    return _client
