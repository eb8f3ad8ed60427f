"""
Vault Edit Transaction — Safe read-modify-write of an artifact.

Lifecycle:
    IDLE → LOADED → EDITING → VALIDATING → COMMITTED | ABORTED

1. Load: decrypt the existing artifact (or start from ``{}``).
2. Edit: write plaintext to a private temporary file and hand its path
   to the editor invoker, blocking until it returns.
3. Validate: the edited text must be a JSON object.
4. Commit: re-encrypt and atomically replace the artifact.

The on-disk artifact is only ever replaced by a complete, valid,
re-encrypted tree. Any failure leaves it byte-for-byte unchanged.

Known limitation: concurrent edits of the same artifact are not
coordinated; the last commit wins.

Security Note:
    The temporary plaintext file is created with mode 0600 and removed
    on every exit path. Never log its contents.
"""
import os
import stat
import shlex
import logging
import tempfile
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson

from ..exceptions import ErrorCode, InvalidFormat, RelicError
from .artifact import decrypt_and_parse, serialize
from .crypto import DEFAULT_ITERATIONS
from .kdf import KeyCache
from .tree import encrypt_tree

logger = logging.getLogger("relic.vault")

EditorInvoker = Callable[[Path], int]


class TransactionState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    EDITING = "editing"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating edited plaintext."""

    tree: Optional[dict[str, Any]] = None
    error: Optional[ErrorCode] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class EditOutcome:
    """Final result of an edit transaction."""

    state: TransactionState
    error: Optional[ErrorCode] = None
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.state is TransactionState.COMMITTED


def validate_plaintext(text: Union[str, bytes]) -> ValidationResult:
    """Check that edited text is a JSON object."""
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        return ValidationResult(
            error=ErrorCode.INVALID_JSON,
            message="Edited content is not valid JSON",
        )
    if not isinstance(data, dict):
        return ValidationResult(
            error=ErrorCode.INVALID_JSON,
            message="Secrets must be a JSON object",
        )
    return ValidationResult(tree=data)


class SubprocessEditor:
    """Runs an editor command with the file path as its last argument."""

    def __init__(self, command: str):
        self.command = command

    def __call__(self, path: Path) -> int:
        args = shlex.split(self.command, posix=os.name != "nt") + [str(path)]
        logger.debug("Launching editor: %s", args[0])
        return subprocess.run(args, check=False).returncode


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` through a fresh sibling file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
        if path.exists():
            # mkstemp creates 0600; keep the mode of the file being replaced
            os.chmod(tmp_name, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class EditTransaction:
    """A single read-modify-write of an artifact through an editor.

    Args:
        master_key: Master key string.
        artifact_path: Path of the artifact file (may not exist yet).
        editor: Callable receiving the plaintext file path and returning
            the editor's exit code.
        iterations: PBKDF2 iteration count for re-encrypted leaves.
        cache: Optional key cache; a private one is used otherwise.
    """

    def __init__(
        self,
        master_key: str,
        artifact_path: Union[str, Path],
        editor: EditorInvoker,
        iterations: int = DEFAULT_ITERATIONS,
        cache: Optional[KeyCache] = None,
    ):
        self._master_key = master_key
        self.artifact_path = Path(artifact_path)
        self._editor = editor
        self._iterations = iterations
        self._cache = cache if cache is not None else KeyCache()
        self.state = TransactionState.IDLE
        self._tree: dict[str, Any] = {}

    def _abort(self, error: ErrorCode, message: str) -> EditOutcome:
        self.state = TransactionState.ABORTED
        logger.warning("Edit of %s aborted: %s (%s)", self.artifact_path, message, error.value)
        return EditOutcome(self.state, error, message)

    def load(self) -> None:
        """IDLE → LOADED. Raises RelicError if the artifact cannot be read."""
        if self.artifact_path.exists():
            try:
                text = self.artifact_path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                raise InvalidFormat("Artifact is not valid UTF-8") from None
            self._tree = decrypt_and_parse(self._master_key, text, self._cache)
        else:
            logger.info("Artifact %s not found, starting empty", self.artifact_path)
            self._tree = {}
        self.state = TransactionState.LOADED

    def run(self) -> EditOutcome:
        """Execute the transaction and return its outcome."""
        if self.state is not TransactionState.IDLE:
            raise RuntimeError(f"Transaction already {self.state.value}")
        try:
            self.load()
        except RelicError as err:
            return self._abort(err.code, err.message)

        fd, tmp_name = tempfile.mkstemp(prefix="relic-edit-", suffix=".json")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fp:
                fp.write(serialize(self._tree))

            self.state = TransactionState.EDITING
            try:
                code = self._editor(tmp_path)
            except OSError as err:
                return self._abort(
                    ErrorCode.EDITOR_FAILED, f"Failed to open editor: {err.strerror or err}",
                )
            if code != 0:
                return self._abort(
                    ErrorCode.EDITOR_FAILED, f"Editor exited with code {code}",
                )

            self.state = TransactionState.VALIDATING
            result = validate_plaintext(tmp_path.read_bytes())
            if not result.ok:
                return self._abort(result.error, result.message)

            try:
                encrypted = encrypt_tree(
                    self._master_key, result.tree, self._iterations, self._cache,
                )
                write_atomic(self.artifact_path, serialize(encrypted))
            except RelicError as err:
                return self._abort(err.code, err.message)
            self.state = TransactionState.COMMITTED
            logger.info(
                "Saved %d top-level key(s) to %s", len(result.tree), self.artifact_path,
            )
            return EditOutcome(self.state, message=f"Secrets saved to {self.artifact_path}")
        finally:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass


def run_edit_transaction(
    master_key: str,
    artifact_path: Union[str, Path],
    editor: EditorInvoker,
    iterations: int = DEFAULT_ITERATIONS,
    cache: Optional[KeyCache] = None,
) -> EditOutcome:
    """Run a full edit transaction on ``artifact_path``."""
    return EditTransaction(master_key, artifact_path, editor, iterations, cache).run()
