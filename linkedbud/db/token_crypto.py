import logging

from cryptography.fernet import Fernet, InvalidToken
from linkedbud.config import settings
from linkedbud.errors import ConfigurationError

logger = logging.getLogger(__name__)

def _fernet() -> Fernet:
    if not settings.fernet_key:
        raise ConfigurationError("FERNET_KEY is not configured")
    return Fernet(settings.fernet_key.encode())

def encrypt_token(plain: str | None) -> str | None:
    if plain is None:
        return None
    return _fernet().encrypt(plain.encode()).decode()

def decrypt_token(cipher: str | None) -> str | None:
    if cipher is None:
        return None
    try:
        return _fernet().decrypt(cipher.encode()).decode()
    except (TypeError, InvalidToken):
        # usually a rotated FERNET_KEY; the user has to reconnect
        logger.error("Stored LinkedIn token could not be decrypted")
        raise
