# trimmer/printer.py
# Console output for the trimmer CLI: results on stdout, errors on stderr.

import os
import sys
from typing import NamedTuple, Optional, TextIO


class _Level(NamedTuple):
    symbol: str
    color: str
    always: bool       # printed even in quiet mode
    to_stderr: bool


class OutputPrinter:
    """
    Prints a headline per message, an optional block of aligned
    "key : value" details, and an optional "→" hint.

    Colour is cosmetic; every line also carries a symbol. NO_COLOR in the
    environment turns it off. Quiet mode keeps only errors.
    """

    LEVELS : dict[str, _Level] = {
        "success" : _Level("✅", "32", always=False, to_stderr=False),
        "error"   : _Level("❌", "31", always=True,  to_stderr=True),
        "warning" : _Level("⚠️ ", "33", always=False, to_stderr=False),
        "info"    : _Level("ℹ️ ", "36", always=False, to_stderr=False),
    }

    HINT_SYMBOL   : str = "→"
    HINT_COLOR    : str = "36"
    KEY_COLOR     : str = "90"
    MIN_KEY_WIDTH : int = 6

    def __init__(self, quiet : bool = False, no_color : bool = False) -> None:
        self.quiet    : bool = quiet
        self.no_color : bool = no_color or bool(os.environ.get("NO_COLOR", ""))

    def _colorize(self, text : str, code : str) -> str:
        if self.no_color:
            return text
        return f"\033[{code}m{text}\033[0m"

    def _emit(
        self,
        level   : str,
        message : str,
        hint    : Optional[str] = None,
        details : Optional[dict[str, str]] = None,
        spaced  : bool = True,
    ) -> None:
        spec : _Level = self.LEVELS[level]
        if self.quiet and not spec.always:
            return
        stream : TextIO = sys.stderr if spec.to_stderr else sys.stdout

        lead : str = "\n" if spaced else ""
        headline : str = f"{self._colorize(spec.symbol, spec.color)} {self._colorize(message, spec.color)}"
        print(lead + headline, file=stream)

        if details:
            width : int = max(self.MIN_KEY_WIDTH, *(len(k) for k in details))
            for key, value in details.items():
                print(f"    {self._colorize(key.ljust(width), self.KEY_COLOR)} : {value}", file=stream)
        if hint:
            print("    " + self._colorize(f"{self.HINT_SYMBOL} {hint}", self.HINT_COLOR), file=stream)

    def success(self, title : str, details : Optional[dict[str, str]] = None) -> None:
        """Headline plus a key/value block aligned on the longest key."""
        self._emit("success", title, details=details)

    def error(self, message : str, hint : Optional[str] = None) -> None:
        """Always printed, always to stderr."""
        self._emit("error", message, hint=hint)

    def warning(self, message : str, hint : Optional[str] = None) -> None:
        self._emit("warning", message, hint=hint)

    def info(self, message : str) -> None:
        self._emit("info", message, spaced=False)
