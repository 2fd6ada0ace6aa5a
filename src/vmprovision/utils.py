"""
Utils functions
"""
import logging
import re
import shlex
import shutil
import subprocess
import sys
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Sequence

from .constants import StatusLevel
from .errors import ToolError, ToolTimeout

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Patterns whose captured value must never reach logs or the terminal
_SECRET_PATTERNS = [
    re.compile(r"(passw(?:or)?d\s*[=:]\s*)(\S+)", re.IGNORECASE),
    re.compile(r"(://[^:/\s]+:)([^@/\s]+)(@)"),
]


def setup_logging(log_path, level="INFO"):
    """
    Configure root logging to append to the application's log file.
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logging.basicConfig(
        filename=str(log_path),
        level=numeric_level,
        format=LOG_FORMAT,
        force=True,
    )


def sanitize_sensitive_data(text: str, secrets: Iterable[str] = ()) -> str:
    """
    Redact passwords and credentials embedded in a message.

    Args:
        text: The message to sanitize
        secrets: Literal values to redact wherever they appear

    Returns:
        str: The message with sensitive values replaced by "***"
    """
    if not text:
        return text
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    for pattern in _SECRET_PATTERNS:
        if pattern.groups == 3:
            text = pattern.sub(r"\1***\3", text)
        else:
            text = pattern.sub(r"\1***", text)
    return text


def supports_colors(stream=None) -> bool:
    """Return True if the stream is an interactive terminal."""
    stream = stream or sys.stdout
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def format_status(level: str, message: str, color: bool = False) -> str:
    """Format a status line such as "[INFO] message"."""
    code = StatusLevel.COLORS.get(level)
    if color and code:
        return f"\033[{code}m[{level}]\033[0m {message}"
    return f"[{level}] {message}"


def print_status(level: str, message: str, stream=None) -> None:
    """Print a categorized status line, colored when writing to a terminal."""
    stream = stream or sys.stdout
    print(format_status(level, message, supports_colors(stream)), file=stream)


def missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the tools that cannot be found on PATH, preserving order."""
    missing = []
    for tool in tools:
        if tool not in missing and shutil.which(tool) is None:
            missing.append(tool)
    return missing


def run_tool(
    args: Sequence[str],
    error_cls=ToolError,
    timeout: Optional[float] = None,
    input_text: Optional[str] = None,
    secrets: Iterable[str] = (),
) -> subprocess.CompletedProcess:
    """
    Run an external tool, raising error_cls when it cannot run or exits non-zero.

    Args:
        args: Command and arguments
        error_cls: ToolError subclass to raise on failure
        timeout: Seconds to wait before giving up, None waits forever
        input_text: Text fed to the tool's stdin
        secrets: Values redacted from logged output

    Returns:
        subprocess.CompletedProcess: The finished process

    Raises:
        ToolTimeout: If the tool did not finish in time
        error_cls: If the tool is missing or exited with a non-zero code
    """
    command_line = sanitize_sensitive_data(shlex.join(args), secrets)
    logging.info(f"Running: {command_line}")
    try:
        result = subprocess.run(
            list(args),
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logging.error(f"{args[0]} timed out after {timeout}s")
        raise ToolTimeout(f"{args[0]} timed out after {timeout}s", timeout) from e
    except OSError as e:
        logging.error(f"Cannot run {args[0]}: {e}")
        raise error_cls(f"Cannot run {args[0]}: {e}") from e

    if result.returncode != 0:
        stderr = sanitize_sensitive_data((result.stderr or "").strip(), secrets)
        logging.error(f"{args[0]} exited with code {result.returncode}: {stderr}")
        message = f"{args[0]} exited with code {result.returncode}"
        if stderr:
            message += f": {stderr}"
        raise error_cls(message, returncode=result.returncode, stderr=stderr)

    return result


class KeyedLock:
    """
    A mapping of keys to locks, used to serialize work on the same resource.

    An entry lives only while some thread holds or waits for its key.
    """

    def __init__(self):
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: str):
        """Hold the lock for key for the duration of the block."""
        key = str(key)
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._locks.get(str(key))
        return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
