import redis
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#LUA compare-and-delete, atomic
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis runs the script atomically, nothing can slip between GET and DEL,
#so a lock that expired and was taken by someone else is never deleted by us


class LockService:
    """
    -lock per payment transaction, held across the provider capture call
    -release only by the owner that acquired it (lua)
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(transaction_id: str) -> str:
        return f"payment:{transaction_id}:lock"

    @redis_retry()
    def acquire_payment_lock(self, transaction_id: str, owner: str, ttl: int) -> bool:
        key = self._key(transaction_id)
        logger.info(f"Acquire lock {key} for {owner}")
        #SET payment:ABC:lock "<owner>" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True,  #only if the key does not exist yet
                ex=ttl,  #expires on its own even if the process dies mid-capture
            )
        )

    @redis_retry()
    def release_payment_lock(self, transaction_id: str, owner: str) -> bool:
        key = self._key(transaction_id)
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
