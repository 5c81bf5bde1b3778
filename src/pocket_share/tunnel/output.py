"""Classification of cloudflared log output.

Readiness is inferred from free-form log text, so the matching rules live
here and nowhere else; the supervisor only reacts to the resulting kinds.
"""

import re
from enum import Enum


class OutputKind(str, Enum):
    """What a single line of tunnel output means for the supervisor."""

    READY = "ready"
    CONNECTING = "connecting"
    FATAL = "fatal"


class OutputClassifier:
    """Maps cloudflared output lines to ``OutputKind`` values.

    The first ``READY`` line marks the tunnel as usable even though cloudflared
    goes on registering more redundant connections afterwards.
    """

    READY_MARKERS: tuple[str, ...] = ("Registered tunnel connection",)
    FATAL_PATTERN: re.Pattern[str] = re.compile(r"(^|\s)(ERR|FTL)(\s|$)")

    def classify(self, line: str) -> OutputKind:
        """Classify one line of output."""
        if any(marker in line for marker in self.READY_MARKERS):
            return OutputKind.READY
        if self.FATAL_PATTERN.search(line):
            return OutputKind.FATAL
        return OutputKind.CONNECTING
