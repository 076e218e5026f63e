# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GateError(Exception):
    """
    Structured runner error with enough context for:
      - clean CLI output
      - a machine-readable job reason (`kind`)
      - debugging without full tracebacks
    """
    kind: str
    message: str
    job: str | None = None
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ProvisionError(GateError):
    def __init__(self, message: str, **kw) -> None:
        super().__init__("ProvisionError", message, **kw)


class CommandFailure(GateError):
    def __init__(self, message: str, exit_code: int, **kw) -> None:
        super().__init__("CommandFailure", message, **kw)
        self.exit_code = exit_code


class JobTimeoutError(GateError):
    # reported as "TimeoutError" so the reason string matches the taxonomy
    def __init__(self, message: str, **kw) -> None:
        super().__init__("TimeoutError", message, **kw)


class CheckoutError(GateError):
    def __init__(self, message: str, **kw) -> None:
        super().__init__("CheckoutError", message, **kw)


class WorkflowError(GateError):
    def __init__(self, message: str, **kw) -> None:
        super().__init__("WorkflowError", message, **kw)


TOOL_HINTS = {
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo": "Install a Rust toolchain with rustup or fix PATH.",
    "git": "Install Git or fix PATH.",
}
