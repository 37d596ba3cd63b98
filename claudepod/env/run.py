"""Utility functions for running subprocesses and handling command-line interactions."""
import os
import pwd
import shlex
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Mapping, TextIO

from .errors import ClaudepodError
from .messages import DEBUG

#pylint: disable=redefined-builtin


class CompletedProcess(subprocess.CompletedProcess[str]):
    """A custom CompletedProcess that captures the output of stdout/stderr and prints
    it when converted to a string.
    """
    def __str__(self) -> str:
        out = [
            f"Exit code {self.returncode} from command:\n\n"
            f"    {' '.join(shlex.quote(a) for a in self.args)}"
        ]
        if self.stderr:
            out.append(self.stderr.strip())
        return "\n\n".join(out)


class CommandError(ClaudepodError, subprocess.CalledProcessError):
    """A custom exception for container runtime errors, which captures the output of
    stdout/stderr and prints it when converted to a string.
    """
    def __init__(self, returncode: int, cmd: list[str], stdout: str, stderr: str) -> None:
        super().__init__(returncode, cmd, stdout, stderr)

    def __str__(self) -> str:
        out = [
            f"Exit code {self.returncode} from command:\n\n"
            f"    {' '.join(shlex.quote(a) for a in self.cmd)}"
        ]
        if self.stderr:
            out.append(self.stderr.strip())
        return "\n\n".join(out)


def _pump_output(src: TextIO, sink: TextIO, buf_list: list[str]) -> None:
    for line in src:
        buf_list.append(line)
        sink.write(line)
        sink.flush()
    src.close()


def run(
    argv: list[str],
    *,
    check: bool = True,
    capture_output: bool | None = False,
    input: str | None = None,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CompletedProcess:
    """A wrapper around `subprocess.run` that defaults to text mode and properly
    formats errors.

    Parameters
    ----------
    argv : list[str]
        The command and its arguments to run.
    check : bool, optional
        Whether to raise a `CommandError` if the command fails (default is True).  If
        false, then the return code is left for the caller to inspect.
    capture_output : bool | None, optional
        If true, then all output will be redirected to the returned `CompletedProcess`
        or `CommandError`, and excluded from the inherited stdout/stderr streams.  If
        false (the default), then the opposite is the case, and the child inherits
        the console, which is required for interactive sessions.  If None, then
        separate threads will "tee" output to both the console and the returned
        objects simultaneously, so that build failures still carry their error text.
    input : str | None, optional
        Input to send to the command's stdin (default is None).
    cwd : Path | None, optional
        An optional working directory to run the command in.  If None (the default),
        then the current working directory will be used.
    env : Mapping[str, str] | None, optional
        An optional environment dictionary to use for the command.  If None (the
        default), then the current process's environment will be used.

    Returns
    -------
    CompletedProcess
        The completed process result.

    Raises
    ------
    CommandError
        If the command fails and `check` is True, or if the executable could not be
        found.  The text of the error reflects the error code, original command, and
        captured output from stderr.
    """
    DEBUG(" ".join(shlex.quote(a) for a in argv))
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
                cp.args,
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
            rc = p.wait()
            t_out.join()
            t_err.join()

            result = CompletedProcess(
                argv,
                rc,
                "".join(stdout_lines),
                "".join(stderr_lines),
            )
    except subprocess.CalledProcessError as err:
        raise CommandError(err.returncode, argv, err.stdout or "", err.stderr or "") from err
    except FileNotFoundError as err:
        raise CommandError(127, argv, "", f"executable not found: {argv[0]}") from err

    if check and rc != 0:
        raise CommandError(rc, argv, result.stdout, result.stderr)
    return result


def confirm(prompt: str, *, assume_yes: bool = False) -> bool:
    """Ask the user for a yes/no confirmation for a given prompt.

    Parameters
    ----------
    prompt : str
        The prompt to display to the user.
    assume_yes : bool, optional
        If True, automatically return True without prompting the user.  Default is
        False.

    Returns
    -------
    bool
        True if the user confirmed yes, false otherwise.
    """
    if assume_yes:
        return True
    try:
        response = input(prompt).strip().lower()
    except EOFError:
        return False
    return response in {"y", "yes"}


class UserInfo:
    """A simple structure representing the invoking user by user ID, group ID and
    home directory.  When running under `sudo`, the original user is reported.
    """

    def __init__(self) -> None:
        euid = os.geteuid()
        sudo_uid = os.environ.get("SUDO_UID")
        if euid == 0 and sudo_uid:
            self._uid = int(sudo_uid)
        else:
            self._uid = os.getuid()
        pw = pwd.getpwuid(self._uid)
        self._gid = pw.pw_gid
        self._home = Path(pw.pw_dir)

    @property
    def uid(self) -> int:
        """
        Returns
        -------
        int
            The numeric user ID.
        """
        return self._uid

    @property
    def gid(self) -> int:
        """
        Returns
        -------
        int
            The numeric group ID.
        """
        return self._gid

    @property
    def home(self) -> Path:
        """
        Returns
        -------
        Path
            The path to the user's home directory.
        """
        return self._home


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to a file, avoiding partial writes.

    Parameters
    ----------
    path : Path
        The path to write to.
    text : str
        The text to write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}.{int(time.time())}")
    tmp.write_text(text, encoding="utf-8")
    try:
        with tmp.open("r+", encoding="utf-8") as f:
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        pass
    tmp.replace(path)
