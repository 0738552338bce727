from __future__ import annotations

import subprocess
from typing import Optional

from . import CapabilitySpec
from ..types import Outcome


class RunCommand:
    """Run a shell command through ``sh -c`` and capture its output.

    The outcome is a success whenever the process could be spawned: a nonzero
    exit status is folded into the captured text instead of being reported as
    a failure, leaving its interpretation to the reflection and error-analysis
    capabilities.
    """

    name = "run_command"
    description = "Runs a shell command and returns its stdout/stderr output."

    def __init__(self, *, shell: str = "sh", cwd: Optional[str] = None, timeout_s: Optional[float] = None) -> None:
        self.shell = shell
        self.cwd = cwd
        self.timeout_s = timeout_s

    def execute(self, input: str) -> Outcome:
        try:
            proc = subprocess.run(
                [self.shell, "-c", input],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_s,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            return Outcome.fail(f"Command execution failed: {exc}")
        return Outcome.ok(((proc.stdout or "") + (proc.stderr or "")).strip())

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="Shell command to run (e.g. 'pytest -q')",
            tags=("shell", "command", "execution"),
        )


__all__ = ["RunCommand"]
