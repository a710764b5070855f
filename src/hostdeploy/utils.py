"""Logging utilities using rich"""

from datetime import datetime, timezone
from pathlib import Path
from typing import IO, TypeGuard

from rich.console import Console
from rich.markup import escape

console = Console(soft_wrap=True)
console_err = Console(stderr=True, soft_wrap=True)

REDACTED = "****"


def timestamp() -> str:
    """UTC timestamp used as the prefix of every log line."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S%z")


class Logger:
    """Colored console logger that mirrors every line into a run log file.

    Secrets registered with :meth:`redact` are masked before anything is
    printed or written.
    """

    def __init__(self):
        self._secrets: set[str] = set()
        self._file: IO[str] | None = None
        self.log_path: Path | None = None

    def open(self, log_dir: Path) -> Path:
        """Start mirroring to a new run-scoped file under ``log_dir``.

        Args:
            log_dir: Directory for run logs (created if missing)

        Returns:
            Path of the log file
        """
        self.close()
        log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_path = log_dir / f"deploy_{stamp}.log"
        self._file = open(self.log_path, "a", encoding="utf-8")
        return self.log_path

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def redact(self, secret: str | None):
        """Never let ``secret`` reach the console or the log file."""
        if is_non_empty_str(secret):
            self._secrets.add(secret)

    def scrub(self, text: str) -> str:
        # Longest first so a secret containing another is masked whole
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, REDACTED)
        return text

    def _write(self, level: str, msg: str) -> tuple[str, str]:
        stamp = timestamp()
        msg = self.scrub(msg)
        if self._file is not None:
            self._file.write(f"{stamp} {level}: {msg}\n")
            self._file.flush()
        return stamp, escape(msg)

    def info(self, msg: str):
        stamp, text = self._write("INFO", msg)
        console.print(f"[dim]{stamp}[/dim] [blue][INFO][/blue] {text}")

    def success(self, msg: str):
        stamp, text = self._write("SUCCESS", msg)
        console.print(f"[dim]{stamp}[/dim] [green][SUCCESS][/green] {text}")

    def warn(self, msg: str):
        stamp, text = self._write("WARN", msg)
        console.print(f"[dim]{stamp}[/dim] [yellow][WARN][/yellow] {text}")

    def error(self, msg: str):
        stamp, text = self._write("ERROR", msg)
        console_err.print(f"[dim]{stamp}[/dim] [red][ERROR][/red] {text}")

    def detail(self, msg: str):
        """Record tool output in the log file only."""
        if msg:
            self._write("DETAIL", msg)


# Global logger instance
logger = Logger()


def is_non_empty_str(value: str | None) -> TypeGuard[str]:
    """Type guard that checks if value is a non-empty string.

    Args:
        value: The value to check

    Returns:
        True if value is a non-None, non-empty string
    """
    return value is not None and value != ""
