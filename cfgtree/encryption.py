"""
Field-level encryption for cfgtree.

This module provides the encrypt/decrypt capability used by Setting nodes
for fields declared with ``encrypted=True``:
- EncryptionConfig: cipher parameters plus the active key provider
- KeyProvider implementations: environment variable, key file, AWS KMS

Ciphertext format: base64(iv[12] + auth_tag[16] + ciphertext), AES-GCM.

Invariants:
    - Encryption without a key provider fails; it never stores plaintext
    - Key material is never logged or included in error messages
    - The KMS data key is fetched once and cached per provider

How to change safely:
    - Keep the envelope layout stable; stored configs depend on it
    - Add new key providers through create_key_provider()
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import EncryptionError

logger = logging.getLogger(__name__)

DEFAULT_KEY_ENV_VAR = "CFGTREE_ENCRYPTION_KEY"

GCM_IV_SIZE = 12
GCM_TAG_SIZE = 16


class KeyProvider(ABC):
    """Source of raw key material."""

    @property
    @abstractmethod
    def key(self) -> bytes:
        """Raw key bytes.

        Raises:
            EncryptionError: If the key is unavailable
        """
        ...


class EnvKeyProvider(KeyProvider):
    """Reads the key from an environment variable on every access."""

    def __init__(self, env_var: Optional[str] = None) -> None:
        self.env_var = env_var or DEFAULT_KEY_ENV_VAR

    @property
    def key(self) -> bytes:
        value = os.environ.get(self.env_var)
        if not value:
            raise EncryptionError(f"Encryption key not found in environment variable {self.env_var}")
        return value.encode("utf-8")


class FileKeyProvider(KeyProvider):
    """Reads the key from a file (surrounding whitespace stripped)."""

    def __init__(self, file_path: Optional[str] = None) -> None:
        if not file_path:
            raise EncryptionError("File path not provided")
        self.file_path = Path(file_path)

    @property
    def key(self) -> bytes:
        if not self.file_path.exists():
            raise EncryptionError(f"Key file not found: {self.file_path}")
        try:
            return self.file_path.read_bytes().strip()
        except OSError as e:
            raise EncryptionError(f"Failed to read key file: {e.strerror or e}") from e


class AwsKmsKeyProvider(KeyProvider):
    """Generates a data key with AWS KMS.

    The key is fetched asynchronously with load() and cached; encryption
    itself stays synchronous.

    Example:
        >>> provider = AwsKmsKeyProvider(key_id="alias/config", region="us-east-1")
        >>> await provider.load()
        >>> encryption.use_provider(provider)
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> None:
        if not key_id:
            raise EncryptionError("KMS key ID not provided")
        self.key_id = key_id
        self.region = region
        self.endpoint_url = endpoint_url
        self._key: Optional[bytes] = None

    @property
    def loaded(self) -> bool:
        return self._key is not None

    @property
    def key(self) -> bytes:
        if self._key is None:
            raise EncryptionError("KMS data key not loaded; await load() first")
        return self._key

    async def load(self) -> bytes:
        """Fetch and cache a 256-bit data key from KMS."""
        if self._key is not None:
            return self._key

        client_kwargs: dict[str, Any] = {}
        if self.region:
            client_kwargs["region_name"] = self.region
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url

        session = get_session()
        try:
            async with session.create_client("kms", **client_kwargs) as kms:
                response = await kms.generate_data_key(KeyId=self.key_id, KeySpec="AES_256")
        except (ClientError, BotoCoreError) as e:
            raise EncryptionError(f"Failed to get key from KMS: {e}") from e

        self._key = response["Plaintext"]
        logger.info("Loaded data key from KMS", extra={"key_id": self.key_id})
        return self._key


def create_key_provider(kind: str, **options: Any) -> KeyProvider:
    """Create a key provider by name ("env", "file", "aws_kms").

    Raises:
        EncryptionError: For an unknown provider kind
    """
    if kind == "env":
        return EnvKeyProvider(options.get("env_var"))
    if kind == "file":
        return FileKeyProvider(options.get("file_path"))
    if kind == "aws_kms":
        return AwsKmsKeyProvider(
            key_id=options.get("key_id"),
            region=options.get("region"),
            endpoint_url=options.get("endpoint_url"),
        )
    raise EncryptionError(f"Unknown key provider: {kind}")


class EncryptionConfig:
    """Cipher parameters and key provider for encrypted fields.

    Attributes:
        algorithm: Cipher family (only "aes")
        key_size: Key size in bits (128, 192 or 256)
        mode: Cipher mode (only "gcm")
        provider: Active KeyProvider, or None
    """

    def __init__(
        self,
        algorithm: str = "aes",
        key_size: int = 256,
        mode: str = "gcm",
        provider: Optional[KeyProvider] = None,
    ) -> None:
        self.algorithm = algorithm
        self.key_size = key_size
        self.mode = mode
        self.provider = provider

    def key_provider(self, kind: str, **options: Any) -> EncryptionConfig:
        """Configure the key provider by name; returns self for chaining."""
        self.provider = create_key_provider(kind, **options)
        logger.debug(f"Encryption key provider set to {kind}")
        return self

    def use_provider(self, provider: KeyProvider) -> EncryptionConfig:
        """Install an already-built key provider."""
        self.provider = provider
        return self

    @property
    def configured(self) -> bool:
        return self.provider is not None

    def _cipher(self) -> AESGCM:
        if self.provider is None:
            raise EncryptionError("No key provider configured")
        if self.algorithm.lower() != "aes" or self.mode.lower() != "gcm":
            raise EncryptionError(f"Unsupported cipher: {self.algorithm}-{self.key_size}-{self.mode}")

        key = self.provider.key
        if len(key) * 8 != self.key_size:
            raise EncryptionError(
                f"Encryption key must be {self.key_size // 8} bytes, got {len(key)}"
            )
        return AESGCM(key)

    def encrypt(self, value: Any) -> str:
        """Encrypt a value (converted to text) and return the base64 envelope.

        Raises:
            EncryptionError: If no key is available
        """
        cipher = self._cipher()
        iv = os.urandom(GCM_IV_SIZE)
        sealed = cipher.encrypt(iv, str(value).encode("utf-8"), b"")
        ciphertext, tag = sealed[:-GCM_TAG_SIZE], sealed[-GCM_TAG_SIZE:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, encrypted_value: Optional[str]) -> Optional[str]:
        """Decrypt a base64 envelope produced by encrypt().

        Raises:
            EncryptionError: If the value is malformed or fails authentication
        """
        if encrypted_value is None:
            return None
        cipher = self._cipher()

        try:
            data = base64.b64decode(encrypted_value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError(f"Invalid encrypted value: {e}") from e
        if len(data) < GCM_IV_SIZE + GCM_TAG_SIZE:
            raise EncryptionError("Invalid encrypted value: payload too short")

        iv = data[:GCM_IV_SIZE]
        tag = data[GCM_IV_SIZE:GCM_IV_SIZE + GCM_TAG_SIZE]
        ciphertext = data[GCM_IV_SIZE + GCM_TAG_SIZE:]
        try:
            plain = cipher.decrypt(iv, ciphertext + tag, b"")
        except InvalidTag as e:
            raise EncryptionError("Decryption failed: authentication tag mismatch") from e
        return plain.decode("utf-8")
