"""Command-line interface."""

from __future__ import annotations

import os
import platform
import signal
import sys
import time
from typing import Optional, Sequence

import click
from click.shell_completion import get_completion_class

from .consts import ReloadProgress
from .su import auto_su
from .sysdump import dump_network_info

VERSION = "unknown"
ABORT_FILE = "/var/run/dae.abort"
PID_FILE_PATH = "/var/run/dae.pid"
SIGNAL_PROGRESS_FILE_PATH = "/var/run/dae.progress"

_SHELLS = ("bash", "zsh", "fish")
_FINISHED = (ReloadProgress.DONE.value, ReloadProgress.ERROR.value)


def _version_text() -> str:
    return "\n".join(
        [
            VERSION,
            f"python runtime {platform.python_version()} "
            f"{sys.platform}/{platform.machine()}",
        ]
    )


def read_signal_progress_file(path: str = SIGNAL_PROGRESS_FILE_PATH) -> tuple[str, str]:
    """Return the one-character progress code and the text after the first line."""
    with open(path, "rb") as fh:
        text = fh.read().decode("utf-8", errors="replace")
    first_line, _, content = text.partition("\n")
    if len(first_line) != 1:
        raise ValueError(f"unexpected format: {text}")
    return first_line, content


def read_pid(pid_arg: Optional[str] = None, pid_file: str = PID_FILE_PATH) -> int:
    """Parse the pid given, or the one in the pid file when none is given."""
    if pid_arg is None:
        with open(pid_file, encoding="utf-8", errors="replace") as fh:
            pid_arg = fh.read().strip()
    try:
        return int(pid_arg, 10)
    except ValueError:
        raise ValueError(f"invalid pid: {pid_arg!r}") from None


def _touch(path: str) -> None:
    try:
        with open(path, "w"):
            pass
    except OSError:
        pass


def send_reload(
    pid: int,
    abort: bool = False,
    progress_path: str = SIGNAL_PROGRESS_FILE_PATH,
    abort_path: str = ABORT_FILE,
) -> str:
    """Ask the running process to reload and wait for its report; return the message."""
    if abort:
        _touch(abort_path)
    try:
        code, _ = read_signal_progress_file(progress_path)
    except (OSError, ValueError):
        pass
    else:
        if code not in _FINISHED:
            return f"{progress_path} shows another reload operation is in progress."
    try:
        with open(progress_path, "w") as fh:
            fh.write(ReloadProgress.SEND.value)
    except OSError:
        pass
    os.kill(pid, signal.SIGUSR1)
    time.sleep(0.5)
    try:
        code, _ = read_signal_progress_file(progress_path)
    except (OSError, ValueError):
        code = ""
    if code == ReloadProgress.SEND.value:
        # The running process does not report progress.
        return "OK"
    while True:
        time.sleep(0.2)
        try:
            code, content = read_signal_progress_file(progress_path)
        except (OSError, ValueError):
            return "OK"
        if code in _FINISHED:
            return content


def send_suspend(pid: int, abort: bool = False, abort_path: str = ABORT_FILE) -> None:
    """Ask the running process to suspend into a no-load state."""
    if abort:
        _touch(abort_path)
    os.kill(pid, signal.SIGUSR2)


def get_completion(shell: str) -> str:
    """Return the completion script of this command for bash, zsh or fish."""
    if shell not in _SHELLS:
        raise ValueError(f"unsupported shell type (must be bash, zsh or fish): {shell}")
    completion_class = get_completion_class(shell)
    if completion_class is None:
        raise ValueError(f"unsupported shell type (must be bash, zsh or fish): {shell}")
    return completion_class(cli, {}, "dae", "_DAE_COMPLETE").source()


@click.group(
    help="dae is a high-performance transparent proxy solution.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(message="%(version)s", version=_version_text(), prog_name="dae")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """dae is a high-performance transparent proxy solution."""
    ctx.ensure_object(dict)


@cli.command(
    hidden=True,
    short_help="Output shell completion code for the specified shell (bash, zsh or fish)",
    help="Output shell completion code for the specified shell (bash, zsh or fish).",
)
@click.argument("shell")
def completion(shell: str) -> None:
    try:
        out = get_completion(shell)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(out, nl=False)


@cli.command(help="Let dae call for you.")
def honk() -> None:
    click.echo("Honk! Honk! Honk! This is dae!")
    click.echo("\a\a\a\x1b[1A")
    time.sleep(0.3)
    click.echo("\a\a\a\x1b[1A")
    time.sleep(0.3)
    click.echo("\a\a\a\x1b[1A")


def _resolve_pid(ctx: click.Context, pid_arg: Optional[str]) -> int:
    try:
        return read_pid(pid_arg)
    except OSError as exc:
        click.echo(f"Failed to read pid file: {exc}")
        raise click.exceptions.Exit(1)
    except ValueError:
        click.echo(ctx.get_help())
        raise click.exceptions.Exit(1)


@cli.command(help="To reload config file without interrupt connections.")
@click.argument("pid", required=False)
@click.option("-a", "--abort", is_flag=True, default=False, help="Abort established connections.")
@click.pass_context
def reload(ctx: click.Context, pid: Optional[str], abort: bool) -> None:
    auto_su()
    target = _resolve_pid(ctx, pid)
    try:
        message = send_reload(target, abort)
    except OSError as exc:
        click.echo(str(exc))
        raise click.exceptions.Exit(1)
    click.echo(message)


@cli.command(
    help="To suspend dae. This command puts dae into no-load state. Recover it by 'dae reload'."
)
@click.argument("pid", required=False)
@click.option("-a", "--abort", is_flag=True, default=False, help="Abort established connections.")
@click.pass_context
def suspend(ctx: click.Context, pid: Optional[str], abort: bool) -> None:
    auto_su()
    target = _resolve_pid(ctx, pid)
    try:
        send_suspend(target, abort)
    except OSError as exc:
        click.echo(str(exc))
        raise click.exceptions.Exit(1)
    click.echo("OK")


@cli.command(help="To dump up system network config")
def sysdump() -> None:
    dump_network_info()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line and return its exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        result = cli.main(args=args, prog_name="dae", standalone_mode=False)
    except click.exceptions.Exit as exc:
        return exc.exit_code
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    return result if isinstance(result, int) else 0