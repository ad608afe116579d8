"""Fan-out execution engine for fanssh."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .config import HostTarget, Operation, PushFile, RunCommand
from .errors import ConfigurationError
from .operations import push_file, run_command
from .outcome import Outcome, OutputSink
from .transport import Transport

logger = logging.getLogger(__name__)


class NodeStatus(Enum):
    """Status of a host's task."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class NodeState:
    """Runtime state for a host."""

    target: HostTarget
    status: NodeStatus = NodeStatus.PENDING
    outcome: Outcome | None = None
    log_file: Path | None = None


# Type alias for output callback
OutputCallback = Callable[[int, str, str], None]  # (target index, address, record text) -> None
StatusCallback = Callable[[int, str, NodeStatus], None]  # (target index, address, status) -> None


class Executor:
    """Runs one operation on every target concurrently."""

    def __init__(
        self,
        targets: Sequence[HostTarget],
        operation: Operation,
        sink: OutputSink,
        timeout: float = 30,
        known_hosts: Path | None = None,
        log_dir: Path | None = None,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
    ):
        self.targets = list(targets)
        self.operation = operation
        self.sink = sink
        self.timeout = timeout
        self.known_hosts = known_hosts
        self.log_dir = log_dir
        self.on_output = on_output
        self.on_status = on_status
        self.states: dict[str, NodeState] = {}
        self._log_dir: Path | None = None

    def _setup_logging(self) -> None:
        """Set up per-host log directory with timestamp."""
        if self.log_dir is None:
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self._log_dir = self.log_dir / timestamp
        self._log_dir.mkdir(parents=True, exist_ok=True)

    def _emit_output(self, index: int, address: str, outcome: Outcome) -> None:
        """Write an outcome to the sink and the host's log file."""
        text = self.sink.emit(outcome)

        state = self.states.get(address)
        if state is not None:
            state.outcome = outcome
            if state.log_file:
                with open(state.log_file, "a") as f:
                    f.write(text)

        if self.on_output:
            self.on_output(index, address, text)

    def _emit_status(self, index: int, address: str, status: NodeStatus) -> None:
        """Emit status change for a host."""
        if address in self.states:
            self.states[address].status = status
        if self.on_status:
            self.on_status(index, address, status)

    def _check_credentials(self) -> None:
        if not any(target.has_credentials for target in self.targets):
            raise ConfigurationError("A password or private key is required")

    def _build_transports(self) -> list[Transport]:
        # Keys are loaded here, so a bad key aborts before any host is dialed.
        if self.known_hosts is None:
            logger.warning("Host key verification is disabled; any host key is accepted")
        return [
            Transport(target, timeout=self.timeout, known_hosts=self.known_hosts)
            for target in self.targets
        ]

    async def run_all(self) -> dict[str, NodeState]:
        """Run the operation on all hosts in parallel and wait for every one."""
        self._check_credentials()
        transports = self._build_transports()
        self._setup_logging()

        for target in self.targets:
            log_file = None
            if self._log_dir:
                log_file = self._log_dir / f"{_safe_name(target.address)}.log"
            self.states[target.address] = NodeState(target=target, log_file=log_file)

        tasks = [self._run_node(i, transport) for i, transport in enumerate(transports)]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]
        return self.states

    async def _run_node(self, index: int, transport: Transport) -> None:
        """Run the operation on a single host and record its outcome."""
        address = transport.address
        self._emit_status(index, address, NodeStatus.RUNNING)

        # sessions dial lazily, so a push with a missing local file never connects
        async with transport:
            outcome = await self._perform(transport)

        logger.debug("%s finished: %s", address, outcome.kind.value)
        self._emit_output(index, address, outcome)
        self._emit_status(index, address, NodeStatus.SUCCESS if outcome.ok else NodeStatus.FAILED)

    async def _perform(self, transport: Transport) -> Outcome:
        if isinstance(self.operation, RunCommand):
            return await run_command(transport, self.operation.command)
        if isinstance(self.operation, PushFile):
            return await push_file(
                transport, self.operation.local_path, self.operation.remote_dir
            )
        raise TypeError(f"Unknown operation: {self.operation!r}")


def _safe_name(address: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", address)


async def run_all(
    targets: Sequence[HostTarget],
    operation: Operation,
    sink: OutputSink,
    **kwargs,
) -> dict[str, NodeState]:
    """Run ``operation`` on every target, writing one record per host to ``sink``."""
    return await Executor(targets, operation, sink, **kwargs).run_all()
