"""
Vault Artifact — Canonical text form of an encrypted secrets tree.

The artifact is a UTF-8 JSON object, pretty-printed with 2-space
indentation, keys in insertion order and a trailing newline, so version
control diffs stay small and deterministic.
"""
from collections.abc import Mapping
from typing import Any, Optional, Union

import orjson

from ..exceptions import InvalidFormat, InvalidJson
from .crypto import DEFAULT_ITERATIONS
from .kdf import KeyCache
from .tree import decrypt_tree, encrypt_tree


def serialize(tree: Mapping[str, Any]) -> str:
    """Render a tree as canonical artifact text."""
    try:
        data = orjson.dumps(dict(tree), option=orjson.OPT_INDENT_2)
    except orjson.JSONEncodeError as err:
        raise InvalidFormat(f"Secrets tree is not JSON-serializable: {err}") from err
    return data.decode("utf-8") + "\n"


def parse(text: Union[str, bytes]) -> dict[str, Any]:
    """Parse artifact text into a tree.

    Raises:
        InvalidFormat: If the text is not JSON or the root is not an object.
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        raise InvalidFormat("Artifact is not valid JSON") from None
    if not isinstance(data, dict):
        raise InvalidFormat(
            f"Artifact root must be a JSON object, got {type(data).__name__}"
        )
    return data


def _load_plain(plain: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(plain, Mapping):
        return plain
    try:
        data = orjson.loads(plain)
    except orjson.JSONDecodeError:
        raise InvalidJson("Secrets are not valid JSON") from None
    if not isinstance(data, dict):
        raise InvalidJson()
    return data


def encrypt_artifact(
    master_key: str,
    plain: Union[str, bytes, Mapping[str, Any]],
    iterations: int = DEFAULT_ITERATIONS,
    cache: Optional[KeyCache] = None,
) -> str:
    """Encrypt plaintext secrets into artifact text.

    Args:
        master_key: Master key string.
        plain: Plaintext JSON object, as text or an already parsed mapping.
        iterations: PBKDF2 iteration count for every leaf.
        cache: Optional key cache.

    Returns:
        Artifact text ready to be written to disk.

    Raises:
        InvalidJson: If ``plain`` is not a JSON object.
    """
    tree = _load_plain(plain)
    return serialize(encrypt_tree(master_key, tree, iterations, cache))


def decrypt_and_parse(
    master_key: str,
    artifact: Union[str, bytes],
    cache: Optional[KeyCache] = None,
) -> dict[str, Any]:
    """Parse artifact text and decrypt every token.

    Raises:
        InvalidFormat: Malformed artifact or token.
        DecryptFailed: Wrong master key or tampered token.
    """
    return decrypt_tree(master_key, parse(artifact), cache)


def decrypt_artifact(
    master_key: str,
    artifact: Union[str, bytes],
    cache: Optional[KeyCache] = None,
) -> str:
    """Decrypt artifact text into pretty-printed plaintext JSON."""
    return serialize(decrypt_and_parse(master_key, artifact, cache))
