"""Transient per-job log buffer for step output."""
from collections import deque
from typing import Deque, Dict, List, Set


class LogBuffer:
    """
    Holds the output lines of the steps of one job.

    Each step keeps at most ``max_bytes`` of output; the oldest lines are
    dropped first. Owned by the job currently executing and discarded with it.
    """

    TRUNCATION_MARKER = "[actrunner] earlier output truncated"

    def __init__(self, max_bytes: int = 1024 * 1024):
        """
        Initialize log buffer.

        Args:
            max_bytes: Output budget per step
        """
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.max_bytes = max_bytes
        self._lines: Dict[int, Deque[str]] = {}
        self._sizes: Dict[int, int] = {}
        self._truncated: Set[int] = set()

    def write(self, step_index: int, line: str, truncated: bool = False) -> None:
        """
        Append one line of output for a step.

        A line that alone exceeds ``max_bytes`` keeps only its tail.

        Args:
            step_index: Index of the step that produced the line
            line: Output line without trailing newline
            truncated: The line already lost its head upstream
        """
        lines = self._lines.setdefault(step_index, deque())
        encoded = line.encode("utf-8", errors="replace")
        if len(encoded) + 1 > self.max_bytes:
            # Cut on a byte boundary; a split leading character is dropped
            encoded = encoded[len(encoded) + 1 - self.max_bytes:]
            line = encoded.decode("utf-8", errors="ignore")
            truncated = True
        if truncated:
            self._truncated.add(step_index)

        size = len(line.encode("utf-8", errors="replace")) + 1
        lines.append(line)
        self._sizes[step_index] = self._sizes.get(step_index, 0) + size

        while self._sizes[step_index] > self.max_bytes and len(lines) > 1:
            dropped = lines.popleft()
            self._sizes[step_index] -= len(dropped.encode("utf-8", errors="replace")) + 1
            self._truncated.add(step_index)

    def lines(self, step_index: int) -> List[str]:
        return list(self._lines.get(step_index, ()))

    def text(self, step_index: int) -> str:
        """
        Return the buffered output of a step as one string.

        A marker line is prepended when older output was dropped.
        """
        lines = self.lines(step_index)
        if step_index in self._truncated:
            lines.insert(0, self.TRUNCATION_MARKER)
        return "\n".join(lines)

    def is_truncated(self, step_index: int) -> bool:
        return step_index in self._truncated

    def clear(self) -> None:
        self._lines.clear()
        self._sizes.clear()
        self._truncated.clear()
