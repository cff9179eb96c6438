from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass
from typing import Sequence


class ToolCancelled(RuntimeError):
    """Raised when a child process is killed because its cancel event was set."""


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    stdout: str
    stderr: str


def run_tool(
    command: Sequence[str],
    cancel_event: threading.Event | None = None,
    poll_interval: float = 0.2,
) -> ToolResult:
    """Run ``command`` to completion, capturing text output.

    Without a cancel event this is a plain ``subprocess.run``. With one, the
    child is polled and killed as soon as the event is set. A missing binary
    surfaces as ``FileNotFoundError`` so callers can word their own error.
    """
    if cancel_event is None:
        proc = subprocess.run(list(command), capture_output=True, text=True, check=False)
        return ToolResult(proc.returncode, proc.stdout or "", proc.stderr or "")

    if cancel_event.is_set():
        raise ToolCancelled(f"Cancelled before starting {command[0]}")

    child = subprocess.Popen(
        list(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    # communicate() in a helper thread keeps the pipes drained while we poll.
    outputs: list[str] = ["", ""]

    def _drain() -> None:
        out, err = child.communicate()
        outputs[0] = out or ""
        outputs[1] = err or ""

    drainer = threading.Thread(target=_drain, daemon=True)
    drainer.start()
    while drainer.is_alive():
        if cancel_event.wait(poll_interval):
            child.kill()
            drainer.join()
            raise ToolCancelled(f"{command[0]} was cancelled")
    drainer.join()
    return ToolResult(child.returncode, outputs[0], outputs[1])
