"""Gateway callback signature verification.

The gateway signs ``"{order_id}|{payment_id}"`` with HMAC-SHA256 under the
shared key secret and sends the lowercase hex digest. This check is the only
defence against a forged payment confirmation.
"""

from __future__ import annotations

import hashlib
import hmac


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``order_id|payment_id``."""
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: str,
    payment_id: str,
    signature: str,
    secret: str,
) -> bool:
    """Constant-time comparison of ``signature`` against the expected digest."""
    expected = compute_payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode(), signature.encode())
