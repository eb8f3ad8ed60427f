"""
Relic Runtime — Read-only access to decrypted secrets.

Provides the public API used by applications:
- ``load()`` — resolve, decrypt and return all secrets
- ``get(key)`` — return one top-level secret, raising if missing
- ``has(key)`` / ``keys()`` — check and enumerate top-level secrets
- ``create_relic()`` — factory with the same options

Artifact resolution order: explicit artifact text → explicit artifact path →
default file (``config/relic.enc``) if present → ``RELIC_ARTIFACT`` env var.

Master key resolution order: explicit master key → key file
(``config/relic.key``) if present → ``RELIC_MASTER_KEY`` env var.

Security Note:
    Never log secret values. Decrypted values stay in process memory while
    the instance caches them; pass ``cache=False`` to decrypt on every call.
"""
import os
import logging
from pathlib import Path
from typing import Any, Optional, Union

from .data import SecretsData
from .exceptions import KeyNotFound, MissingArtifact
from .vault.artifact import decrypt_and_parse
from .vault.config import (
    ARTIFACT_ENV,
    ARTIFACT_FILE,
    KEY_FILE,
    MASTER_KEY_ENV,
    resolve_master_key,
)
from .vault.kdf import KeyCache

logger = logging.getLogger("relic.runtime")


class Relic:
    """Accessor for an encrypted secrets artifact.

    Decrypted secrets are cached per ``(master_key, artifact)`` pair, so a
    new key or a changed artifact always triggers a fresh decryption.
    """

    def __init__(
        self,
        artifact: Optional[str] = None,
        artifact_path: Union[str, Path, None] = None,
        master_key: Optional[str] = None,
        key_file: Union[str, Path, None] = KEY_FILE,
        artifact_env: str = ARTIFACT_ENV,
        master_key_env: str = MASTER_KEY_ENV,
        cache: bool = True,
        key_cache: Optional[KeyCache] = None,
    ):
        self._artifact = artifact
        self._artifact_path = Path(artifact_path) if artifact_path else None
        self._master_key = master_key
        self._key_file = key_file
        self._artifact_env = artifact_env
        self._master_key_env = master_key_env
        self._should_cache = cache
        self._key_cache = key_cache if key_cache is not None else KeyCache()
        self._cache: dict[tuple[str, str], SecretsData] = {}

    # ------------------------------------------------------------------
    # Resolution helpers
    # ------------------------------------------------------------------

    def _get_artifact(self) -> str:
        """Resolve the artifact text.

        Raises:
            MissingArtifact: If no source provides an artifact.
        """
        if self._artifact:
            return self._artifact
        if self._artifact_path is not None:
            try:
                return self._artifact_path.read_text(encoding="utf-8")
            except FileNotFoundError:
                raise MissingArtifact(
                    f"Artifact file not found: {self._artifact_path}"
                ) from None
        default = Path(ARTIFACT_FILE)
        if default.is_file():
            content = default.read_text(encoding="utf-8")
            if content:
                return content
        value = os.environ.get(self._artifact_env)
        if value:
            return value
        raise MissingArtifact()

    def _get_master_key(self) -> str:
        return resolve_master_key(
            self._master_key, self._key_file, self._master_key_env,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self) -> SecretsData:
        """Load and decrypt all secrets.

        Returns:
            Read-only mapping of decrypted secrets.

        Raises:
            MissingArtifact: No artifact could be resolved.
            MissingMasterKey: No master key could be resolved.
            InvalidFormat: The artifact is malformed.
            DecryptFailed: Wrong master key or tampered artifact.
        """
        artifact = self._get_artifact()
        master_key = self._get_master_key()
        cache_key = (master_key, artifact)

        if self._should_cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        secrets = SecretsData(decrypt_and_parse(master_key, artifact, self._key_cache))
        if self._should_cache:
            self._cache[cache_key] = secrets
        logger.debug("Relic loaded %d secret(s)", len(secrets))
        return secrets

    def get(self, key: str) -> Any:
        """Return a top-level secret.

        Raises:
            KeyNotFound: If ``key`` is not present.
        """
        secrets = self.load()
        if key not in secrets:
            raise KeyNotFound(key)
        return secrets[key]

    def has(self, key: str) -> bool:
        """Check if a top-level key exists."""
        return key in self.load()

    def keys(self) -> list[str]:
        """List top-level key names."""
        return list(self.load().keys())

    def clear_cache(self) -> None:
        """Forget decrypted secrets and derived keys."""
        self._cache.clear()
        self._key_cache.clear()


def create_relic(**options: Any) -> Relic:
    """Create a :class:`Relic` instance.

    Accepts the same keyword arguments as :class:`Relic`.
    """
    return Relic(**options)
