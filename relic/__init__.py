"""Relic.

Git-friendly encrypted secrets: a JSON tree whose structure stays readable
while every value is encrypted and authenticated on its own.
"""
from .version import (
    __title__, __description__, __version__, __copyright__, __author__, __license__
)
from .exceptions import (
    ErrorCode,
    RelicError,
    MissingArtifact,
    MissingMasterKey,
    InvalidFormat,
    UnsupportedVersion,
    DecryptFailed,
    InvalidJson,
    KeyNotFound,
    EditorFailed,
)
from .data import SecretsData
from .vault import (
    DEFAULT_ITERATIONS,
    ENCRYPTED_VALUE_PREFIX,
    KeyCache,
    decode_leaf,
    encode_leaf,
    is_encoded,
    encrypt_tree,
    decrypt_tree,
    encrypt_artifact,
    decrypt_artifact,
    decrypt_and_parse,
    run_edit_transaction,
    EditOutcome,
    SubprocessEditor,
    TransactionState,
    RelicConfig,
    generate_master_key,
)
from .runtime import Relic, create_relic

__all__ = (
    "Relic",
    "create_relic",
    "SecretsData",
    "KeyCache",
    "encode_leaf",
    "decode_leaf",
    "is_encoded",
    "encrypt_tree",
    "decrypt_tree",
    "encrypt_artifact",
    "decrypt_artifact",
    "decrypt_and_parse",
    "run_edit_transaction",
    "EditOutcome",
    "SubprocessEditor",
    "TransactionState",
    "RelicConfig",
    "generate_master_key",
    "DEFAULT_ITERATIONS",
    "ENCRYPTED_VALUE_PREFIX",
    "ErrorCode",
    "RelicError",
    "MissingArtifact",
    "MissingMasterKey",
    "InvalidFormat",
    "UnsupportedVersion",
    "DecryptFailed",
    "InvalidJson",
    "KeyNotFound",
    "EditorFailed",
)
