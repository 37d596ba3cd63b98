"""Print colorized warnings, errors, and debug messages to the console."""
import os
import sys
from typing import NoReturn

import colorama


colorama.init(autoreset=True)
WHITE = colorama.Fore.WHITE                 # default
RED = colorama.Fore.LIGHTRED_EX             # failures
YELLOW = colorama.Fore.LIGHTYELLOW_EX       # warnings/emphasis in messages
GREEN = colorama.Fore.LIGHTGREEN_EX         # success
CYAN = colorama.Fore.LIGHTCYAN_EX           # diagnostics/verbose output
MAGENTA = colorama.Fore.LIGHTMAGENTA_EX     # debug (internal)


VERBOSE: bool = os.environ.get("CLAUDEPOD_DEBUG", "").strip().lower() in {"1", "true", "yes"}


# pylint: disable=invalid-name, global-statement


def set_verbose(enabled: bool) -> None:
    """Enable or disable printing of `DEBUG` messages.

    Parameters
    ----------
    enabled : bool
        Whether debug messages should be printed.
    """
    global VERBOSE
    VERBOSE = enabled


def DEBUG(message: str) -> None:
    """Print a debug message to stderr if verbose output is enabled, and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    if VERBOSE:
        print(f"{MAGENTA}DEBUG{WHITE}: {message}", file=sys.stderr)


def INFO(message: str) -> None:
    """Print an informational message to the console and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{CYAN}INFO{WHITE}: {message}")


def OK(message: str) -> None:
    """Print a success message to the console and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{GREEN}OK{WHITE}: {message}")


def WARN(message: str) -> None:
    """Print a warning message to stderr and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{YELLOW}WARNING{WHITE}: {message}", file=sys.stderr)


def FAIL(message: str, code: int = 1) -> NoReturn:
    """Print a failure message to stderr and exit the program with an error code.

    Parameters
    ----------
    message : str
        The message to print before exiting.
    code : int, optional
        The exit status to return.  Defaults to 1.
    """
    print(f"{RED}FAILURE{WHITE}: {message}", file=sys.stderr)
    sys.exit(code or 1)
