"""Per-host outcome records and the shared output sink."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from .errors import ConnectFailure, HostError


class OutcomeKind(Enum):
    """How a host's operation ended."""

    SUCCESS = "success"
    CONNECT_FAILURE = "connect_failure"
    OPERATION_FAILURE = "operation_failure"


@dataclass(frozen=True)
class Outcome:
    """Result of one host's operation."""

    host: str
    kind: OutcomeKind
    output: bytes = b""
    message: str = ""
    pushed: bool = False

    @classmethod
    def success(cls, host: str, output: bytes = b"", pushed: bool = False) -> Outcome:
        return cls(host=host, kind=OutcomeKind.SUCCESS, output=output, pushed=pushed)

    @classmethod
    def from_error(cls, error: HostError) -> Outcome:
        kind = (
            OutcomeKind.CONNECT_FAILURE
            if isinstance(error, ConnectFailure)
            else OutcomeKind.OPERATION_FAILURE
        )
        return cls(host=error.host, kind=kind, message=error.message)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def format(self) -> str:
        """Render the record as one complete block of text."""
        if self.kind is OutcomeKind.CONNECT_FAILURE:
            return f"connect to {self.host} failed, error: {self.message}\n"
        if self.kind is OutcomeKind.OPERATION_FAILURE:
            return f"{self.host} operation failed, error: {self.message}\n"
        if self.pushed:
            return f"{self.host} send file succeeded\n"
        output = self.output.decode("utf-8", errors="replace")
        return f"{self.host} execution result:\n{output}\n"


class OutputSink:
    """Append-only destination shared by all host tasks.

    Each record is formatted in full and written with a single call while
    holding a lock, so records from concurrent writers never interleave.
    """

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self.count = 0

    def emit(self, outcome: Outcome) -> str:
        text = outcome.format()
        self.write(text)
        return text

    def write(self, text: str) -> None:
        with self._lock:
            self.stream.write(text)
            self.stream.flush()
            self.count += 1
