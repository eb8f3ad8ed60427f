"""
Vault Configuration — Master key resolution and validated settings.

Master key resolution order:
    1. Explicit value passed by the caller
    2. Key file (default ``config/relic.key``), for local development
    3. ``RELIC_MASTER_KEY`` environment variable, for CI/production

Security Note:
    Never log key material. Only log file paths and variable names.
"""
import os
import sys
import base64
import secrets
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..exceptions import MissingMasterKey
from .crypto import DEFAULT_ITERATIONS

logger = logging.getLogger("relic.vault")

ARTIFACT_ENV = "RELIC_ARTIFACT"
MASTER_KEY_ENV = "RELIC_MASTER_KEY"
ARTIFACT_FILE = "config/relic.enc"
KEY_FILE = "config/relic.key"
EDITOR_ENV = "RELIC_EDITOR"


def read_key_file(key_file: Union[str, Path]) -> Optional[str]:
    """Return the stripped key stored in ``key_file``, or None.

    Missing files and files holding only whitespace both yield None.
    """
    path = Path(key_file)
    if not path.is_file():
        return None
    key = path.read_text(encoding="utf-8").strip()
    return key or None


def resolve_master_key(
    master_key: Optional[str] = None,
    key_file: Union[str, Path, None] = KEY_FILE,
    env_var: str = MASTER_KEY_ENV,
) -> str:
    """Resolve the master key: explicit value, then key file, then env var.

    Raises:
        MissingMasterKey: If no source provides a key.
    """
    if master_key:
        return master_key
    if key_file is not None:
        key = read_key_file(key_file)
        if key:
            logger.debug("Master key loaded from key file %s", key_file)
            return key
    key = os.environ.get(env_var)
    if key:
        logger.debug("Master key loaded from %s", env_var)
        return key
    raise MissingMasterKey()


def resolve_editor() -> str:
    """Return the editor command: RELIC_EDITOR, then EDITOR, then a default."""
    editor = os.environ.get(EDITOR_ENV) or os.environ.get("EDITOR")
    if editor:
        return editor
    return "notepad" if sys.platform == "win32" else "vi"


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return as base64 string.

    This is a utility for operators to generate new keys.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class RelicConfig(BaseModel):
    """Validated Relic configuration."""

    artifact_file: Path = Field(default=Path(ARTIFACT_FILE))
    key_file: Path = Field(default=Path(KEY_FILE))
    artifact_env: str = Field(default=ARTIFACT_ENV)
    master_key_env: str = Field(default=MASTER_KEY_ENV)
    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1, le=0xFFFFFFFF)
    editor: Optional[str] = None

    @field_validator("artifact_env", "master_key_env")
    @classmethod
    def validate_env_name(cls, v: str) -> str:
        """Validate environment variable names are not empty."""
        if not v or not v.strip():
            raise ValueError("Environment variable name cannot be empty")
        return v.strip()

    def master_key(self, master_key: Optional[str] = None) -> str:
        """Resolve the master key using this configuration."""
        return resolve_master_key(master_key, self.key_file, self.master_key_env)

    def editor_command(self) -> str:
        return self.editor or resolve_editor()

    @classmethod
    def from_env(cls) -> "RelicConfig":
        """Create RelicConfig by loading values from environment.

        Returns:
            Populated RelicConfig instance.
        """
        values: dict = {}
        if os.environ.get("RELIC_ARTIFACT_FILE"):
            values["artifact_file"] = os.environ["RELIC_ARTIFACT_FILE"]
        if os.environ.get("RELIC_KEY_FILE"):
            values["key_file"] = os.environ["RELIC_KEY_FILE"]
        if os.environ.get("RELIC_KDF_ITERATIONS"):
            values["iterations"] = os.environ["RELIC_KDF_ITERATIONS"]
        if os.environ.get(EDITOR_ENV):
            values["editor"] = os.environ[EDITOR_ENV]
        return cls(**values)
