"""
Tests for the edit transaction.

Tests cover:
- Creating and editing artifacts through an editor invoker
- Non-destructive aborts (invalid JSON, non-object, editor failure,
  decrypt failure)
- Temporary plaintext cleanup on every path
- The subprocess editor
"""
import os
import shlex
import stat
import sys
from pathlib import Path

import orjson
import pytest

from relic.exceptions import ErrorCode
from relic.vault.artifact import decrypt_and_parse, encrypt_artifact
from relic.vault.crypto import is_encoded
from relic.vault.edit import (
    EditTransaction,
    SubprocessEditor,
    TransactionState,
    run_edit_transaction,
    validate_plaintext,
    write_atomic,
)


class RecordingEditor:
    """Editor invoker that records what it saw and writes new content."""

    def __init__(self, content=None, exit_code=0, error=None):
        self.content = content
        self.exit_code = exit_code
        self.error = error
        self.path = None
        self.seen = None

    def __call__(self, path: Path) -> int:
        self.path = path
        self.seen = path.read_text(encoding="utf-8")
        if self.error is not None:
            raise self.error
        if self.content is not None:
            path.write_text(self.content, encoding="utf-8")
        return self.exit_code


@pytest.fixture
def artifact_path(tmp_path):
    return tmp_path / "config" / "relic.enc"


@pytest.fixture
def existing_artifact(artifact_path, master_key, iterations):
    artifact_path.parent.mkdir(parents=True)
    artifact_path.write_text(
        encrypt_artifact(master_key, {"API_KEY": "abc", "db": {"port": 5432}}, iterations),
        encoding="utf-8",
    )
    return artifact_path


class TestValidatePlaintext:

    def test_object(self):
        result = validate_plaintext('{"a": 1}')
        assert result.ok
        assert result.tree == {"a": 1}

    @pytest.mark.parametrize("text", ["{ invalid", "[1, 2]", "null", '"x"', ""])
    def test_rejected(self, text):
        result = validate_plaintext(text)
        assert not result.ok
        assert result.error is ErrorCode.INVALID_JSON
        assert result.tree is None


class TestEditTransaction:

    def test_creates_new_artifact(self, artifact_path, master_key, iterations):
        """Test editing a missing artifact starts empty and commits."""
        editor = RecordingEditor('{"API_KEY": "new-secret"}')
        outcome = run_edit_transaction(master_key, artifact_path, editor, iterations)

        assert outcome.committed
        assert outcome.state is TransactionState.COMMITTED
        assert outcome.error is None
        assert orjson.loads(editor.seen) == {}
        data = orjson.loads(artifact_path.read_bytes())
        assert is_encoded(data["API_KEY"])
        assert decrypt_and_parse(master_key, artifact_path.read_text()) == {
            "API_KEY": "new-secret",
        }

    def test_edits_existing_artifact(self, existing_artifact, master_key, iterations):
        """Test the editor sees plaintext and the result is re-encrypted."""
        editor = RecordingEditor(
            '{"API_KEY": "abc", "db": {"port": 5433}, "NEW": [1, 2]}'
        )
        outcome = run_edit_transaction(master_key, existing_artifact, editor, iterations)

        assert outcome.committed
        assert orjson.loads(editor.seen) == {"API_KEY": "abc", "db": {"port": 5432}}
        assert editor.seen.endswith("\n")
        assert decrypt_and_parse(master_key, existing_artifact.read_text()) == {
            "API_KEY": "abc",
            "db": {"port": 5433},
            "NEW": [1, 2],
        }

    def test_unchanged_edit_reencrypts(self, existing_artifact, master_key, iterations):
        """Test saving without changes still produces fresh tokens."""
        before = existing_artifact.read_bytes()
        outcome = run_edit_transaction(
            master_key, existing_artifact, RecordingEditor(), iterations,
        )
        assert outcome.committed
        assert existing_artifact.read_bytes() != before
        assert decrypt_and_parse(master_key, existing_artifact.read_text()) == {
            "API_KEY": "abc", "db": {"port": 5432},
        }

    @pytest.mark.parametrize("content", ["{ invalid json", "[1, 2, 3]", '"string"'])
    def test_invalid_content_leaves_artifact(self, existing_artifact, master_key, iterations, content):
        """Test invalid edits abort and leave the artifact byte-identical."""
        before = existing_artifact.read_bytes()
        editor = RecordingEditor(content)
        outcome = run_edit_transaction(master_key, existing_artifact, editor, iterations)

        assert not outcome.committed
        assert outcome.state is TransactionState.ABORTED
        assert outcome.error is ErrorCode.INVALID_JSON
        assert existing_artifact.read_bytes() == before
        assert not editor.path.exists()

    def test_invalid_content_does_not_create_artifact(self, artifact_path, master_key, iterations):
        outcome = run_edit_transaction(
            master_key, artifact_path, RecordingEditor("nope"), iterations,
        )
        assert not outcome.committed
        assert not artifact_path.exists()

    def test_editor_nonzero_exit(self, existing_artifact, master_key, iterations):
        """Test a failing editor aborts without committing."""
        before = existing_artifact.read_bytes()
        editor = RecordingEditor('{"changed": true}', exit_code=1)
        outcome = run_edit_transaction(master_key, existing_artifact, editor, iterations)

        assert outcome.error is ErrorCode.EDITOR_FAILED
        assert "code 1" in outcome.message
        assert existing_artifact.read_bytes() == before
        assert not editor.path.exists()

    def test_editor_spawn_failure(self, existing_artifact, master_key, iterations):
        """Test an editor that cannot start aborts and cleans up."""
        before = existing_artifact.read_bytes()
        editor = RecordingEditor(error=FileNotFoundError(2, "No such file or directory"))
        outcome = run_edit_transaction(master_key, existing_artifact, editor, iterations)

        assert outcome.error is ErrorCode.EDITOR_FAILED
        assert existing_artifact.read_bytes() == before
        assert not editor.path.exists()

    def test_unexpected_editor_error_still_cleans_up(self, artifact_path, master_key, iterations):
        editor = RecordingEditor(error=RuntimeError("crash"))
        with pytest.raises(RuntimeError):
            run_edit_transaction(master_key, artifact_path, editor, iterations)
        assert not editor.path.exists()
        assert not artifact_path.exists()

    def test_wrong_key_aborts_before_editing(self, existing_artifact, iterations):
        """Test a decrypt failure aborts before the editor is called."""
        before = existing_artifact.read_bytes()
        editor = RecordingEditor('{"x": 1}')
        outcome = run_edit_transaction("wrong-key", existing_artifact, editor, iterations)

        assert outcome.state is TransactionState.ABORTED
        assert outcome.error is ErrorCode.DECRYPT_FAILED
        assert editor.path is None
        assert existing_artifact.read_bytes() == before

    def test_corrupted_artifact_aborts(self, artifact_path, master_key, iterations):
        artifact_path.parent.mkdir(parents=True)
        artifact_path.write_text("[not an object]", encoding="utf-8")
        outcome = run_edit_transaction(
            master_key, artifact_path, RecordingEditor("{}"), iterations,
        )
        assert outcome.error is ErrorCode.INVALID_FORMAT
        assert artifact_path.read_text(encoding="utf-8") == "[not an object]"

    def test_temp_file_removed_after_commit(self, artifact_path, master_key, iterations):
        editor = RecordingEditor('{"a": 1}')
        run_edit_transaction(master_key, artifact_path, editor, iterations)
        assert not editor.path.exists()

    def test_no_stray_files_next_to_artifact(self, existing_artifact, master_key, iterations):
        run_edit_transaction(
            master_key, existing_artifact, RecordingEditor('{"a": 1}'), iterations,
        )
        assert [p.name for p in existing_artifact.parent.iterdir()] == ["relic.enc"]

    def test_transaction_runs_once(self, artifact_path, master_key, iterations):
        transaction = EditTransaction(
            master_key, artifact_path, RecordingEditor("{}"), iterations,
        )
        assert transaction.state is TransactionState.IDLE
        transaction.run()
        with pytest.raises(RuntimeError):
            transaction.run()


class TestWriteAtomic:

    def test_replaces_content(self, tmp_path):
        target = tmp_path / "nested" / "file.enc"
        write_atomic(target, "first\n")
        write_atomic(target, "second\n")
        assert target.read_text(encoding="utf-8") == "second\n"
        assert [p.name for p in target.parent.iterdir()] == ["file.enc"]

    def test_keeps_existing_mode(self, tmp_path):
        """Test replacing a file does not narrow its permissions."""
        target = tmp_path / "file.enc"
        target.write_text("first\n", encoding="utf-8")
        os.chmod(target, 0o644)
        write_atomic(target, "second\n")
        assert stat.S_IMODE(target.stat().st_mode) == 0o644

    def test_committed_edit_keeps_mode(self, existing_artifact, master_key, iterations):
        os.chmod(existing_artifact, 0o640)
        outcome = run_edit_transaction(
            master_key, existing_artifact, RecordingEditor('{"a": 1}'), iterations,
        )
        assert outcome.committed
        assert stat.S_IMODE(existing_artifact.stat().st_mode) == 0o640


class TestSubprocessEditor:

    def _script(self, tmp_path, body):
        script = tmp_path / "editor.py"
        script.write_text(body, encoding="utf-8")
        return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"

    def test_runs_with_path_argument(self, tmp_path, artifact_path, master_key, iterations):
        """Test the command receives the temp file path as last argument."""
        command = self._script(
            tmp_path,
            "import sys\n"
            "open(sys.argv[-1], 'w').write('{\"FROM_EDITOR\": \"yes\"}')\n",
        )
        outcome = run_edit_transaction(
            master_key, artifact_path, SubprocessEditor(command), iterations,
        )
        assert outcome.committed
        assert decrypt_and_parse(master_key, artifact_path.read_text()) == {
            "FROM_EDITOR": "yes",
        }

    def test_exit_code_returned(self, tmp_path):
        command = self._script(tmp_path, "import sys\nsys.exit(3)\n")
        assert SubprocessEditor(command)(tmp_path / "x.json") == 3

    def test_missing_command(self, tmp_path, artifact_path, master_key, iterations):
        outcome = run_edit_transaction(
            master_key,
            artifact_path,
            SubprocessEditor("relic-no-such-editor-binary"),
            iterations,
        )
        assert outcome.error is ErrorCode.EDITOR_FAILED
        assert not artifact_path.exists()
