from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .tools.llm import DEFAULT_ENDPOINT, DEFAULT_MODEL


@dataclass
class RuntimeConfig:
    """Settings for one run of the runtime.

    ``max_replans`` bounds the number of corrective cycles after a failed
    execution; ``request_timeout`` of ``None`` waits on the backend forever.
    """

    model: str = DEFAULT_MODEL
    backend_url: str = DEFAULT_ENDPOINT
    request_timeout: Optional[float] = None
    auto_confirm: bool = False
    max_replans: int = 1
    reflect_after_run: bool = True
    use_goal_analysis: bool = False
    static_plan: bool = False
    telemetry_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.max_replans < 0:
            raise ValueError("max_replans must be >= 0")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive when set")


__all__ = ["RuntimeConfig"]
