"""
Execution context handed to every flow.

Flows only talk to the outside world through this object: secrets and
per-run config come in, input/output/progress reports go out. Reports are
logged and kept on the context so callers (and tests) can inspect them.
"""
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .settings import Settings

logger = structlog.get_logger()


class FlowContext:
    """Per-run context: explicit settings, optional run config, report sink."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        config: Optional[Dict[str, Any]] = None,
        flow_name: str = "flow",
    ):
        self.settings = settings or Settings()
        self.config = dict(config or {})
        self.flow_name = flow_name

        self.inputs: List[Dict[str, Any]] = []
        self.outputs: List[Dict[str, Any]] = []
        self.progress: List[Tuple[int, str]] = []

    def get_secret(self, name: str) -> Any:
        """Look up a secret by its environment-style name (e.g. "LLM_PROVIDER")."""
        return getattr(self.settings, name.lower(), None)

    def get_config(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def report_input(self, data: Dict[str, Any]) -> None:
        self.inputs.append(data)
        logger.debug("flow_input", flow=self.flow_name, **_loggable(data))

    def report_output(self, data: Dict[str, Any]) -> None:
        self.outputs.append(data)
        logger.debug("flow_output", flow=self.flow_name, **_loggable(data))

    def report_progress(self, percent: int, message: str) -> None:
        percent = max(0, min(100, int(percent)))
        self.progress.append((percent, message))
        logger.info("flow_progress", flow=self.flow_name, percent=percent, message=message)

    @property
    def last_output(self) -> Optional[Dict[str, Any]]:
        return self.outputs[-1] if self.outputs else None


def _loggable(data: Dict[str, Any]) -> Dict[str, Any]:
    # structlog reserves "event"
    return {("event_" if k == "event" else k): v for k, v in data.items()}
