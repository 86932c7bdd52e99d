"""Utility functions for running external tools and writing build outputs safely."""
import os
import shlex
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Iterable, Mapping, TextIO

#pylint: disable=redefined-builtin


REDACTED: str = "***"
INTERRUPT_GRACE: float = 5.0


def _redact(argv: Iterable[str], secrets: Iterable[str]) -> list[str]:
    hidden = [s for s in secrets if s]
    out = []
    for arg in argv:
        for secret in hidden:
            arg = arg.replace(secret, REDACTED)
        out.append(arg)
    return out


def _format(returncode: int, argv: Iterable[str], stderr: str) -> str:
    out = [
        f"Exit code {returncode} from command:\n\n"
        f"    {' '.join(shlex.quote(a) for a in argv)}"
    ]
    if stderr:
        out.append(stderr.strip())
    return "\n\n".join(out)


class CompletedProcess(subprocess.CompletedProcess[str]):
    """A custom CompletedProcess that captures the output of stdout/stderr and prints
    it when converted to a string.
    """
    def __str__(self) -> str:
        return _format(self.returncode, self.args, self.stderr)

    @property
    def output(self) -> str:
        """
        Returns
        -------
        str
            Captured stdout and stderr, joined and stripped.
        """
        return "\n".join(s.strip() for s in (self.stdout, self.stderr) if s and s.strip())


class CommandError(subprocess.CalledProcessError):
    """A custom exception for failed tool invocations, which captures the output of
    stdout/stderr and prints it when converted to a string.

    Any secrets passed to `run()` are masked in the recorded command line, so the
    error can be logged as-is.
    """
    def __init__(self, returncode: int, cmd: list[str], stdout: str, stderr: str) -> None:
        super().__init__(returncode, cmd, stdout, stderr)

    def __str__(self) -> str:
        return _format(self.returncode, self.cmd, self.stderr)

    @property
    def output_text(self) -> str:
        """
        Returns
        -------
        str
            Captured stdout and stderr, joined and stripped.
        """
        return "\n".join(s.strip() for s in (self.stdout, self.stderr) if s and s.strip())


def _pump_output(src: TextIO, sink: TextIO, buf_list: list[str]) -> None:
    for line in src:
        buf_list.append(line)
        sink.write(line)
        sink.flush()
    src.close()


def _interrupt(p: subprocess.Popen[str]) -> None:
    p.terminate()
    try:
        p.wait(timeout=INTERRUPT_GRACE)
    except subprocess.TimeoutExpired:
        p.kill()
        p.wait()


def run(
    argv: list[str],
    *,
    check: bool = True,
    capture_output: bool | None = False,
    input: str | None = None,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    secrets: Iterable[str] = (),
) -> CompletedProcess:
    """A wrapper around `subprocess.run` that defaults to text mode and properly
    formats errors.

    Parameters
    ----------
    argv : list[str]
        The command and its arguments to run.
    check : bool, optional
        Whether to raise a `CommandError` if the command fails (default is True).  If
        false, then any errors will be ignored.
    capture_output : bool | None, optional
        If true, then all output will be redirected to the returned `CompletedProcess`
        or `CommandError`, and excluded from the inherited stdout/stderr streams.  If
        false (the default), then the opposite is the case, and the returned
        `CompletedProcess` or `CommandError` will not include any captured output.  If
        None, then a separate thread will be used to "tee" output to both the console
        and the returned objects simultaneously.
    input : str | None, optional
        Input to send to the command's stdin (default is None).
    cwd : Path | None, optional
        An optional working directory to run the command in.  If None (the default),
        then the current working directory will be used.
    env : Mapping[str, str] | None, optional
        An optional environment dictionary to use for the command.  If None (the
        default), then the current process's environment will be used.
    secrets : Iterable[str], optional
        Strings that must never appear in the recorded command line.  Each occurrence
        is replaced by `***` in the returned `CompletedProcess` and in any
        `CommandError`.  The command itself still receives the real values.

    Returns
    -------
    CompletedProcess
        The completed process result.

    Raises
    ------
    CommandError
        If the command fails and `check` is True.  The text of the error reflects
        the error code, original command, and captured output from stderr.
    """
    secrets = tuple(secrets)
    shown = _redact(argv, secrets)
    try:
        if capture_output is not None:
            cp = subprocess.run(
                argv,
                check=check,
                capture_output=capture_output,
                text=True,
                input=input,
                cwd=cwd,
                env=env,
            )
            return CompletedProcess(
                shown,
                cp.returncode,
                cp.stdout or "",
                cp.stderr or "",
            )

        # tee stdout/stderr to console while capturing both for error reporting
        with subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if input is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            bufsize=1,  # line-buffered in text mode
            cwd=cwd,
            env=env,
        ) as p:
            stdout_lines: list[str] = []
            stderr_lines: list[str] = []
            if input is not None and p.stdin is not None:
                try:
                    p.stdin.write(input)
                finally:
                    p.stdin.close()

            # read both streams without deadlock
            t_out = threading.Thread(
                target=_pump_output,
                args=(p.stdout, sys.stdout, stdout_lines),
                daemon=True
            )
            t_err = threading.Thread(
                target=_pump_output,
                args=(p.stderr, sys.stderr, stderr_lines),
                daemon=True
            )
            t_out.start()
            t_err.start()
            try:
                rc = p.wait()
            except BaseException:
                # don't leave the tool running behind an interrupted build
                _interrupt(p)
                t_out.join(INTERRUPT_GRACE)
                t_err.join(INTERRUPT_GRACE)
                raise
            t_out.join()
            t_err.join()

            result = CompletedProcess(
                shown,
                rc,
                "".join(stdout_lines),
                "".join(stderr_lines),
            )
    except subprocess.CalledProcessError as err:
        raise CommandError(err.returncode, shown, err.stdout or "", err.stderr or "") from None

    if check and rc != 0:
        raise CommandError(rc, shown, result.stdout, result.stderr)
    return result


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to a file, avoiding race conditions and partial writes.

    Parameters
    ----------
    path : Path
        The path to write to.
    text : str
        The text to write.
    """
    atomic_write_bytes(path, text.encode("utf-8"))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Atomically write bytes to a file, avoiding race conditions and partial writes.

    Parameters
    ----------
    path : Path
        The path to write to.
    data : bytes
        The bytes to write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}.{int(time.time())}")
    tmp.write_bytes(data)
    try:
        with tmp.open("r+b") as f:
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        pass
    tmp.replace(path)
