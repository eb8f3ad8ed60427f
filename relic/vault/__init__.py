"""Relic Vault — Per-value encrypted secrets artifacts.

Security Note (Threat Model):
    Decrypted secrets live in process memory while in use, and the edit
    transaction briefly writes plaintext to a private temporary file that
    is removed on every exit path. Protecting a running process or a
    compromised workstation is out of scope.
"""

from .crypto import (
    DEFAULT_ITERATIONS,
    ENCRYPTED_VALUE_PREFIX,
    decode_leaf,
    encode_leaf,
    is_encoded,
)
from .kdf import KeyCache, derive_key
from .tree import Leaf, Subtree, decrypt_tree, encrypt_tree, to_node, from_node
from .artifact import (
    decrypt_and_parse,
    decrypt_artifact,
    encrypt_artifact,
    parse,
    serialize,
)
from .edit import (
    EditOutcome,
    EditTransaction,
    SubprocessEditor,
    TransactionState,
    run_edit_transaction,
    validate_plaintext,
)
from .config import (
    RelicConfig,
    generate_master_key,
    resolve_editor,
    resolve_master_key,
)

__all__ = [
    "DEFAULT_ITERATIONS",
    "ENCRYPTED_VALUE_PREFIX",
    "decode_leaf",
    "encode_leaf",
    "is_encoded",
    "KeyCache",
    "derive_key",
    "Leaf",
    "Subtree",
    "to_node",
    "from_node",
    "encrypt_tree",
    "decrypt_tree",
    "serialize",
    "parse",
    "encrypt_artifact",
    "decrypt_artifact",
    "decrypt_and_parse",
    "EditOutcome",
    "EditTransaction",
    "SubprocessEditor",
    "TransactionState",
    "run_edit_transaction",
    "validate_plaintext",
    "RelicConfig",
    "generate_master_key",
    "resolve_editor",
    "resolve_master_key",
]
