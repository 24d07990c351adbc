"""CLI output formatting for terminal display.

Text mode reuses the plain-text Telegram renderers; JSON mode prints the
structured payload for scripting. Status and errors go to stderr in JSON mode
so stdout stays parseable.
"""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any, Optional


class OutputFormat(Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"


class CLIOutput:
    """Unified output handler for CLI."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TEXT,
        verbose: bool = False,
        stream: Any = None,
    ) -> None:
        self.format = format
        self.verbose = verbose
        self.stream = stream or sys.stdout

    def emit(self, text: str, payload: Any) -> None:
        """Print `text` in text mode, `payload` as JSON in JSON mode."""
        if self.format == OutputFormat.JSON:
            print(json.dumps(payload, indent=2, default=str), file=self.stream)
        else:
            print(text, file=self.stream)

    def status(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            return
        print(f"⏳ {message}", file=self.stream)

    def info(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            return
        print(f"ℹ️  {message}", file=self.stream)

    def warning(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            print(json.dumps({"warning": message}), file=sys.stderr)
            return
        print(f"⚠️  {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        """Output an error message."""
        if self.format == OutputFormat.JSON:
            print(json.dumps({"error": message}), file=sys.stderr)
            return
        print(f"❌ {message}", file=sys.stderr)

    def debug(self, message: str, data: Optional[Any] = None) -> None:
        if not self.verbose:
            return
        if self.format == OutputFormat.JSON:
            output = {"debug": message}
            if data is not None:
                output["data"] = data
            print(json.dumps(output, default=str), file=sys.stderr)
            return
        print(f"🔍 {message}", file=sys.stderr)
        if data is not None:
            print(f"   {data}", file=sys.stderr)
