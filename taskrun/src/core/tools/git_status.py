from __future__ import annotations

import subprocess
from typing import Optional

from . import CapabilitySpec
from ..types import Outcome


class GitStatus:
    """Report ``git status`` for the working directory; takes no input."""

    name = "git_status"
    description = "Runs 'git status' in the current directory"

    def __init__(self, *, cwd: Optional[str] = None) -> None:
        self.cwd = cwd

    def execute(self, input: str = "") -> Outcome:
        try:
            proc = subprocess.run(
                ["git", "status"],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            return Outcome.fail(f"Failed to run git: {exc}")
        if proc.returncode != 0:
            return Outcome.fail(f"Git error: {proc.stderr.strip()}")
        return Outcome.ok(proc.stdout)

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="No input required.",
            tags=("git", "status", "vcs"),
        )


__all__ = ["GitStatus"]
