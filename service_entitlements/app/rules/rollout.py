"""
Deterministic percentage-rollout bucketing.

Every client (web, mobile, gateway) has to put a given user into the same
bucket for a given feature, so the hash below is fixed: a 31-polynomial
string hash over UTF-16 code units with signed 32-bit wraparound, and
``abs(hash) % 100`` as the bucket.
"""

from typing import Optional

# Returned for anonymous callers; never below any percentage < 100.
NO_BUCKET = 100

_UINT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def string_hash(value: str) -> int:
    """Signed 32-bit polynomial hash of ``value`` (``h = h * 31 + c``)."""
    h = 0
    data = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + code_unit) & _UINT32_MASK
    if h & _INT32_SIGN:
        h -= 1 << 32
    return h


class RolloutBucketer:
    """Maps ``(user_id, feature_key)`` onto a stable bucket in ``[0, 100)``."""

    def bucket_for(self, user_id: Optional[str], feature_key: str) -> int:
        if not user_id:
            return NO_BUCKET
        return abs(string_hash(user_id + feature_key)) % 100

    def is_in_rollout(self, user_id: Optional[str], feature_key: str,
                      rollout_percentage: Optional[int]) -> bool:
        if rollout_percentage is None or rollout_percentage >= 100:
            return True
        return self.bucket_for(user_id, feature_key) < rollout_percentage
