"""
Encryption helpers
Provider credentials are stored encrypted at rest with Fernet
"""
import base64
import hashlib
import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from .logger import get_logger

logger = get_logger('crypto')


class CredentialDecryptionError(Exception):
    """Stored credentials could not be decrypted with the current key"""


class CredentialCrypto:
    """
    Encrypt / decrypt provider credential blobs

    Credentials are JSON objects; they are serialized before encryption and
    parsed again after decryption.
    """

    def __init__(self, key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Args:
            key: Fernet key (urlsafe base64, 32 bytes)
            secret_key: Used to derive a key when no Fernet key is configured
        """
        self.derived = False
        if key:
            fernet_key = key.encode('utf-8') if isinstance(key, str) else key
        elif secret_key:
            fernet_key = self._derive_key(secret_key)
            self.derived = True
        else:
            raise ValueError('A Fernet key or a secret key is required')

        self._fernet = Fernet(fernet_key)

    @staticmethod
    def _derive_key(secret: str) -> bytes:
        """Derive a Fernet key from an arbitrary secret"""
        digest = hashlib.sha256(secret.encode('utf-8')).digest()
        return base64.urlsafe_b64encode(digest)

    def encrypt(self, credentials: Dict[str, Any]) -> str:
        """
        Encrypt a credentials mapping

        Args:
            credentials: Provider credential fields

        Returns:
            Fernet token as text
        """
        plaintext = json.dumps(credentials, sort_keys=True)
        return self._fernet.encrypt(plaintext.encode('utf-8')).decode('utf-8')

    def decrypt(self, token: str) -> Dict[str, Any]:
        """
        Decrypt a stored credentials token

        Raises:
            CredentialDecryptionError: Token was produced with another key or is corrupt
        """
        if not token:
            return {}
        try:
            plaintext = self._fernet.decrypt(token.encode('utf-8'))
        except InvalidToken as e:
            raise CredentialDecryptionError('Stored credentials cannot be decrypted') from e
        return json.loads(plaintext.decode('utf-8'))

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key"""
        return Fernet.generate_key().decode('utf-8')


def get_crypto() -> CredentialCrypto:
    """Credential crypto bound to the current application"""
    crypto = current_app.extensions.get('credential_crypto')
    if crypto is None:
        crypto = CredentialCrypto(
            key=current_app.config.get('CREDENTIAL_ENCRYPTION_KEY'),
            secret_key=current_app.config.get('SECRET_KEY'),
        )
        if crypto.derived:
            logger.warning("CREDENTIAL_ENCRYPTION_KEY not set, deriving credential key from SECRET_KEY")
        current_app.extensions['credential_crypto'] = crypto
    return crypto


def encrypt_credentials(credentials: Dict[str, Any]) -> str:
    """Encrypt credentials with the application key"""
    return get_crypto().encrypt(credentials)


def decrypt_credentials(token: str) -> Dict[str, Any]:
    """Decrypt credentials with the application key"""
    return get_crypto().decrypt(token)
