import os
import asyncio
from prometheus_client import Counter, Gauge, start_http_server
import logging

logger = logging.getLogger(__name__)

REDIS = None

ONLINE_USERS = Gauge('socialchat_online_users', 'Users with an active realtime connection')
WS_EVENTS = Counter('socialchat_ws_events_total', 'Realtime events handled', ['event', 'outcome'])

def init_metrics(port: int = None):
    """Initialize Prometheus metrics server"""
    if os.getenv('ENABLE_METRICS', '1') not in ('1', 'true', 'True'):
        logger.info("Prometheus metrics disabled")
        return
    port = port or int(os.getenv('METRICS_PORT', '8001'))
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')

async def redis_startup():
    """Connect to Redis with retries; leaves REDIS as None when unreachable"""
    global REDIS

    redis_url = os.getenv('REDIS_URL')
    if not redis_url:
        logger.info("REDIS_URL not set, running without Redis")
        return

    import redis.asyncio as aioredis

    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to connect to Redis: {redis_url} (attempt {attempt + 1}/{max_retries})")

            REDIS = aioredis.from_url(
                redis_url,
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=5
            )

            # Test the connection
            await REDIS.ping()

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if REDIS:
                try:
                    await REDIS.aclose()
                except Exception as close_error:
                    logger.debug(f'Redis close after failed attempt: {close_error}')
                REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")

async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global REDIS
    logger.info("Shutting down connections...")

    if REDIS:
        try:
            await REDIS.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None
