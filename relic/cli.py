"""Relic CLI - edit encrypted secrets.

Usage:
    relic init              Initialize relic for local development
    relic edit              Edit secrets with $EDITOR (default command)
    relic print-keys        Print top-level secret keys (never values)
"""
import logging
from pathlib import Path
from typing import NoReturn, Optional

import click

from .exceptions import MissingArtifact, RelicError
from .vault.artifact import decrypt_and_parse, encrypt_artifact
from .vault.config import (
    ARTIFACT_FILE,
    KEY_FILE,
    RelicConfig,
    generate_master_key,
    read_key_file,
)
from .vault.edit import SubprocessEditor, run_edit_transaction, write_atomic
from .version import __version__

logger = logging.getLogger("relic.cli")


def fail(err: RelicError) -> NoReturn:
    raise click.ClickException(str(err))


def add_to_gitignore(pattern: str, root: Optional[Path] = None) -> bool:
    """Append ``pattern`` to .gitignore unless already listed.

    Returns:
        True if the pattern was added, False if it was already present.
    """
    gitignore = (root or Path.cwd()) / ".gitignore"
    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")
        if pattern in (line.strip() for line in content.split("\n")):
            return False
        prefix = "\n" if content and not content.endswith("\n") else ""
        with gitignore.open("a", encoding="utf-8") as fp:
            fp.write(f"{prefix}{pattern}\n")
    else:
        gitignore.write_text(f"{pattern}\n", encoding="utf-8")
    return True


def _master_key(config: RelicConfig) -> str:
    try:
        return config.master_key()
    except RelicError:
        raise click.ClickException(
            "No master key found.\n\n"
            "To set up for local development:\n"
            "  relic init\n\n"
            "Or set the environment variable:\n"
            f"  export {config.master_key_env}=<your-key>"
        ) from None


@click.group(invoke_without_command=True)
@click.option(
    "--file", "-f", "artifact_file", default=ARTIFACT_FILE, show_default=True,
    type=click.Path(dir_okay=False, path_type=Path), help="Artifact file path.",
)
@click.option(
    "--key-file", "-k", default=KEY_FILE, show_default=True,
    type=click.Path(dir_okay=False, path_type=Path), help="Key file path.",
)
@click.option("--iterations", type=click.IntRange(min=1), default=None, hidden=True)
@click.option("--print-keys", is_flag=True, help="Print all secret keys (not values).")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.version_option(__version__, prog_name="relic")
@click.pass_context
def cli(
    ctx: click.Context,
    artifact_file: Path,
    key_file: Path,
    iterations: Optional[int],
    print_keys: bool,
    debug: bool,
) -> None:
    """relic - git-friendly encrypted secrets.

    \b
    Key resolution (in order):
      1. Key file (config/relic.key) - for local development
      2. RELIC_MASTER_KEY env var - for CI/production

    \b
    Environment:
      RELIC_MASTER_KEY   Master key for encryption/decryption
      RELIC_EDITOR       Override editor command
      EDITOR             Editor to use (fallback)
    """
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING)
    values = {"artifact_file": artifact_file, "key_file": key_file}
    if iterations:
        values["iterations"] = iterations
    ctx.obj = RelicConfig.from_env().model_copy(update=values)
    if ctx.invoked_subcommand is None:
        ctx.invoke(print_keys_command if print_keys else edit)


@cli.command()
@click.pass_obj
def init(config: RelicConfig) -> None:
    """Initialize relic (generates key file)."""
    key_path = config.key_file
    artifact_path = config.artifact_file
    key_exists = key_path.exists()
    artifact_exists = artifact_path.exists()

    if artifact_exists and not key_exists:
        click.echo(f"Artifact file exists: {artifact_path}")
        click.echo(f"Key file not found: {key_path}")
        click.echo("")
        click.echo(f"It looks like you're using {config.master_key_env} environment variable.")
        click.echo("No initialization needed for this setup.")
        return

    if key_exists and artifact_exists:
        click.echo("Relic is already initialized.")
        click.echo(f"  Key file: {key_path}")
        click.echo(f"  Artifact: {artifact_path}")
        return

    if key_exists:
        key = read_key_file(key_path)
        if not key:
            raise click.ClickException(f"Key file is empty: {key_path}")
        write_atomic(artifact_path, encrypt_artifact(key, {}, config.iterations))
        click.echo(f"✓ Created encrypted secrets: {artifact_path}")
        click.echo(f"  (using existing key from {key_path})")
        return

    key = generate_master_key()
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_text(key + "\n", encoding="utf-8")
    key_path.chmod(0o600)
    click.echo(f"✓ Generated master key: {key_path}")

    write_atomic(artifact_path, encrypt_artifact(key, {}, config.iterations))
    click.echo(f"✓ Created encrypted secrets: {artifact_path}")

    pattern = key_path.as_posix()
    if add_to_gitignore(pattern):
        click.echo(f"✓ Added {pattern} to .gitignore")
    else:
        click.echo(f"✓ {pattern} already in .gitignore")

    click.echo(
        "\nSetup complete! You can now:\n\n"
        "  relic edit          Edit your secrets\n\n"
        f"For production, set the {config.master_key_env} environment variable:\n\n"
        f"  export {config.master_key_env}=$(cat {pattern})"
    )


@cli.command()
@click.pass_obj
def edit(config: RelicConfig) -> None:
    """Edit secrets (default command)."""
    master_key = _master_key(config)
    logger.debug("Editing %s", config.artifact_file)
    outcome = run_edit_transaction(
        master_key,
        config.artifact_file,
        SubprocessEditor(config.editor_command()),
        iterations=config.iterations,
    )
    if not outcome.committed:
        raise click.ClickException(f"{outcome.message} ({outcome.error.value})")
    click.echo(f"Secrets saved to {config.artifact_file}")


@cli.command("print-keys")
@click.pass_obj
def print_keys_command(config: RelicConfig) -> None:
    """Print all secret keys (not values)."""
    master_key = _master_key(config)
    path = config.artifact_file
    if not path.exists():
        fail(MissingArtifact(f"Artifact file not found: {path}"))
    try:
        secrets = decrypt_and_parse(master_key, path.read_text(encoding="utf-8"))
    except RelicError as err:
        fail(err)
    click.echo("Secret keys:")
    for key in secrets:
        click.echo(f"  - {key}")


def main() -> None:
    cli(prog_name="relic")


if __name__ == "__main__":
    main()
