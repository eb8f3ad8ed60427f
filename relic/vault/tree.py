"""
Vault Tree Walker — Structure-preserving encryption of nested secrets.

A secrets tree is parsed once into a tagged variant: :class:`Subtree`
for mappings and :class:`Leaf` for everything else. Encryption replaces
every leaf with a token and leaves the mapping structure untouched, so
key names and nesting stay readable in the artifact.

Leaves are independent of each other and are processed on a thread pool.
Results are placed back by key path, never by completion order.

Security Note:
    A failing leaf aborts the whole operation. Errors name the key path
    only, never the value.
"""
import logging
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from ..exceptions import DecryptFailed, InvalidFormat
from .crypto import DEFAULT_ITERATIONS, decode_leaf, encode_leaf, is_encoded
from .kdf import KeyCache

logger = logging.getLogger("relic.vault")

Path = tuple[str, ...]


@dataclass(frozen=True)
class Leaf:
    """Terminal, non-mapping value (scalar, array or token)."""

    value: Any


@dataclass
class Subtree:
    """Ordered mapping of key to :class:`Leaf` or :class:`Subtree`."""

    entries: dict[str, "Node"] = field(default_factory=dict)


Node = Union[Leaf, Subtree]


def to_node(tree: Mapping[str, Any]) -> Subtree:
    """Resolve a parsed JSON mapping into a :class:`Subtree`."""
    entries: dict[str, Node] = {}
    for key, value in tree.items():
        if not isinstance(key, str):
            raise InvalidFormat("Secret keys must be strings")
        if isinstance(value, Mapping):
            entries[key] = to_node(value)
        else:
            entries[key] = Leaf(value)
    return Subtree(entries)


def from_node(node: Subtree) -> dict[str, Any]:
    """Convert a :class:`Subtree` back into plain nested dicts."""
    return {
        key: from_node(child) if isinstance(child, Subtree) else child.value
        for key, child in node.entries.items()
    }


def iter_leaves(node: Subtree, prefix: Path = ()) -> Iterator[tuple[Path, Leaf]]:
    """Yield ``(path, leaf)`` pairs depth-first, in insertion order."""
    for key, child in node.entries.items():
        path = prefix + (key,)
        if isinstance(child, Subtree):
            yield from iter_leaves(child, path)
        else:
            yield path, child


def replace_leaves(node: Subtree, values: Mapping[Path, Any], prefix: Path = ()) -> Subtree:
    """Return a copy of ``node`` with leaf values swapped by path."""
    entries: dict[str, Node] = {}
    for key, child in node.entries.items():
        path = prefix + (key,)
        if isinstance(child, Subtree):
            entries[key] = replace_leaves(child, values, path)
        elif path in values:
            entries[key] = Leaf(values[path])
        else:
            entries[key] = child
    return Subtree(entries)


def format_path(path: Path) -> str:
    return ".".join(path)


def _map_leaves(
    leaves: list[tuple[Path, Leaf]],
    func: Callable[[Path, Leaf], Any],
    max_workers: Optional[int],
) -> dict[Path, Any]:
    if not leaves:
        return {}
    if len(leaves) == 1 or max_workers == 1:
        return {path: func(path, leaf) for path, leaf in leaves}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = pool.map(lambda item: func(*item), leaves)
        return {path: result for (path, _), result in zip(leaves, results)}


def encrypt_tree(
    master_key: str,
    tree: Mapping[str, Any],
    iterations: int = DEFAULT_ITERATIONS,
    cache: Optional[KeyCache] = None,
    max_workers: Optional[int] = None,
) -> dict[str, Any]:
    """Encrypt every leaf of ``tree``, keeping its mapping structure.

    Args:
        master_key: Master key string.
        tree: Plaintext secrets mapping (possibly nested).
        iterations: PBKDF2 iteration count for new tokens.
        cache: Optional key cache shared across leaves.
        max_workers: Thread pool size; ``1`` encrypts sequentially.

    Returns:
        A new nested dict with the same shape whose leaves are tokens.
    """
    root = to_node(tree)
    leaves = list(iter_leaves(root))

    def _encrypt(path: Path, leaf: Leaf) -> str:
        return encode_leaf(master_key, leaf.value, iterations, cache)

    tokens = _map_leaves(leaves, _encrypt, max_workers)
    logger.debug("Encrypted %d leaf value(s)", len(tokens))
    return from_node(replace_leaves(root, tokens))


def decrypt_tree(
    master_key: str,
    tree: Mapping[str, Any],
    cache: Optional[KeyCache] = None,
    max_workers: Optional[int] = None,
) -> dict[str, Any]:
    """Decrypt every token in ``tree``, keeping its mapping structure.

    Leaves that are not tokens are passed through unchanged, so partially
    migrated artifacts with plaintext values still load.

    Raises:
        DecryptFailed: If any single token fails; ``path`` names its key.
        InvalidFormat: If a token is malformed or of an unknown version.
    """
    root = to_node(tree)
    encrypted = [
        (path, leaf) for path, leaf in iter_leaves(root) if is_encoded(leaf.value)
    ]

    def _decrypt(path: Path, leaf: Leaf) -> Any:
        try:
            return decode_leaf(master_key, leaf.value, cache)
        except DecryptFailed:
            raise DecryptFailed(path=format_path(path)) from None
        except InvalidFormat as err:
            err.message = f"{err.message} at key '{format_path(path)}'"
            raise

    values = _map_leaves(encrypted, _decrypt, max_workers)
    logger.debug("Decrypted %d leaf value(s)", len(values))
    return from_node(replace_leaves(root, values))
