"""TOTP Service - Second-factor verification for signing"""
from abc import ABC, abstractmethod
from typing import Callable, Optional

import pyotp
from pymongo.database import Database

from ..domain.errors import ValidationError
from ..repositories.mongo_client import TOTP_CONFIG_COLLECTION
from ..utils.logger import get_logger

logger = get_logger(__name__)

SecretLookup = Callable[[str], Optional[str]]


class TotpVerifier(ABC):
    """Verifies a one-time code for a user; secret management lives elsewhere"""

    @abstractmethod
    def verify(self, user_id: str, code: str, purpose: str = "signing") -> None:
        """Raise ValidationError when the code is not accepted"""


class PyOtpVerifier(TotpVerifier):
    """
    RFC 6238 verification with pyotp.

    Args:
        secret_lookup: Returns the user's base32 secret, or None when TOTP
            is not set up for the user
        valid_window: Number of 30s steps accepted either side of now
    """

    def __init__(self, secret_lookup: SecretLookup, valid_window: int = 1):
        self._secret_lookup = secret_lookup
        self._valid_window = valid_window

    def verify(self, user_id: str, code: str, purpose: str = "signing") -> None:
        secret = self._secret_lookup(user_id)
        if not secret:
            raise ValidationError(
                "TOTP is not configured for this user",
                details={"field": "totp_code", "purpose": purpose}
            )

        if not pyotp.TOTP(secret).verify(code.strip(), valid_window=self._valid_window):
            logger.info(
                f"TOTP verification failed for {purpose}",
                extra={"actor_id": user_id, "operation": purpose}
            )
            raise ValidationError(
                "Invalid TOTP code",
                details={"field": "totp_code", "purpose": purpose}
            )


class MongoTotpSecretLookup:
    """Reads enabled TOTP secrets from the totp_configs collection"""

    def __init__(self, db: Database):
        self._configs = db[TOTP_CONFIG_COLLECTION]

    def __call__(self, user_id: str) -> Optional[str]:
        doc = self._configs.find_one({"user_id": user_id, "enabled": True})
        return doc.get("secret") if doc else None
