"""
Shared client instances — Redis.

redis.from_url() does not connect until the first command, so importing
this module is always safe (even when Redis is down during tests).
"""
import logging
import redis

from clinic_crm.config import REDIS_URL

logger = logging.getLogger('clinic_crm.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
