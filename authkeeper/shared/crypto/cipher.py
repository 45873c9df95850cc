"""AES-256-GCM encryption for sensitive field values."""

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import Text
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator

from authkeeper.config.settings import Settings, settings

logger = logging.getLogger(__name__)

KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16


class CipherError(Exception):
    """Raised when data cannot be encrypted or fails authentication on decrypt."""


@dataclass(frozen=True)
class EncryptedData:
    """Hex-encoded ciphertext with the nonce and tag needed to open it."""

    ciphertext: str
    iv: str
    auth_tag: str

    def to_dict(self) -> dict[str, str]:
        return {"encrypted": self.ciphertext, "iv": self.iv, "authTag": self.auth_tag}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "EncryptedData":
        try:
            return cls(ciphertext=data["encrypted"], iv=data["iv"], auth_tag=data["authTag"])
        except KeyError as err:
            raise CipherError(f"Encrypted payload is missing {err.args[0]!r}") from err


class DataCipher:
    """Authenticated encryption with a fresh random nonce per call.

    Decryption verifies the GCM tag before returning anything, so tampered
    ciphertext, nonce or tag raise ``CipherError`` rather than yielding
    garbage plaintext.
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise CipherError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, config: Settings) -> "DataCipher":
        try:
            key = base64.b64decode(config.encryption_key, validate=True)
        except (binascii.Error, ValueError) as err:
            raise CipherError("ENCRYPTION_KEY must be base64-encoded") from err
        return cls(key)

    def encrypt(self, plaintext: str) -> EncryptedData:
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        return EncryptedData(
            ciphertext=sealed[:-TAG_SIZE].hex(),
            iv=nonce.hex(),
            auth_tag=sealed[-TAG_SIZE:].hex(),
        )

    def decrypt(self, data: EncryptedData) -> str:
        try:
            nonce = bytes.fromhex(data.iv)
            sealed = bytes.fromhex(data.ciphertext) + bytes.fromhex(data.auth_tag)
        except ValueError as err:
            raise CipherError("Encrypted payload is not valid hex") from err

        if len(nonce) != NONCE_SIZE or len(sealed) < TAG_SIZE:
            raise CipherError("Encrypted payload has an invalid nonce or tag length")

        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as err:
            logger.warning("Decryption failed: authentication tag mismatch")
            raise CipherError("Encrypted payload failed authentication") from err

        return plaintext.decode("utf-8")


data_cipher = DataCipher.from_settings(settings)


class EncryptedText(TypeDecorator[str]):
    """String column stored as the JSON form of ``EncryptedData``.

    Values are sealed on write and opened on read, so ORM code sees
    plaintext while the table only holds ciphertext. Encrypted columns
    cannot be filtered on.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: str | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        return json.dumps(data_cipher.encrypt(value).to_dict())

    def process_result_value(self, value: str | None, dialect: Dialect) -> str | None:
        if value is None:
            return None
        try:
            payload = json.loads(value)
        except ValueError as err:
            raise CipherError("Encrypted column does not hold a JSON payload") from err
        return data_cipher.decrypt(EncryptedData.from_dict(payload))
