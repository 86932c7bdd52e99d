"""Print colorized progress, warnings, and errors for a build run to the console."""
import sys
from typing import NoReturn

import colorama


colorama.init(autoreset=True)
WHITE = colorama.Fore.WHITE                 # default
RED = colorama.Fore.LIGHTRED_EX             # failures
YELLOW = colorama.Fore.LIGHTYELLOW_EX       # non-fatal warnings
CYAN = colorama.Fore.LIGHTCYAN_EX           # stage progress
MAGENTA = colorama.Fore.LIGHTMAGENTA_EX     # tool diagnostics


# pylint: disable=invalid-name


def DEBUG(message: str) -> None:
    """Print diagnostic output (usually captured from an external tool) and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{MAGENTA}DEBUG{WHITE}: {message}")


def INFO(message: str) -> None:
    """Print a progress message to the console and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{CYAN}INFO{WHITE}: {message}")


def WARN(message: str) -> None:
    """Print a warning for a non-fatal condition and continue.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{YELLOW}WARNING{WHITE}: {message}")


def ERROR(message: str) -> None:
    """Print an error message to stderr without exiting.

    Parameters
    ----------
    message : str
        The message to print to the console.
    """
    print(f"{RED}ERROR{WHITE}: {message}", file=sys.stderr)


def FAIL(message: str, code: int = 1) -> NoReturn:
    """Print a failure message to stderr and exit the program with an error code.

    Parameters
    ----------
    message : str
        The message to print before exiting.
    code : int, optional
        The exit status.  Defaults to 1.
    """
    print(f"{RED}FAILURE{WHITE}: {message}", file=sys.stderr)
    sys.exit(code)
