# apps/drones/qr.py
import hashlib
import hmac
import re
import secrets
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

DRONE_QR_PATTERN = re.compile(r"^DRN-[0-9A-F]{40}$")
SECURE_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")

SECURE_TOKEN_TTL_SECONDS = 300


class QrIssuer:
    """
    Issues and checks delivery verification tokens.

    Drone tokens look like ``DRN-`` plus 40 upper-case hex chars of an
    HMAC-SHA256 over (order, user, timestamp, nonce). Regular-delivery
    tokens are 64 random hex chars with a short expiry.
    """

    def __init__(self, secret=None):
        self.secret = (secret or settings.SECRET_KEY).encode()

    def issue(self, order_id, user_id, timestamp=None, ttl=None):
        timestamp = timestamp or timezone.now()
        nonce = secrets.token_hex(8)
        message = f"{order_id}:{user_id}:{timestamp.timestamp()}:{nonce}".encode()
        digest = hmac.new(self.secret, message, hashlib.sha256).hexdigest()

        token = f"DRN-{digest[:40].upper()}"
        expires_at = timestamp + timedelta(seconds=ttl) if ttl else None
        return token, expires_at

    def issue_secure_token(self, ttl=SECURE_TOKEN_TTL_SECONDS):
        return secrets.token_hex(32), timezone.now() + timedelta(seconds=ttl)

    @staticmethod
    def is_well_formed(token):
        if not isinstance(token, str):
            return False
        return bool(DRONE_QR_PATTERN.match(token) or SECURE_TOKEN_PATTERN.match(token))

    @staticmethod
    def is_expired(expires_at, now=None):
        if expires_at is None:
            return False
        return (now or timezone.now()) >= expires_at
