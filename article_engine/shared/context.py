"""
Execution context handed to every node function.

Nodes read secrets through it and report their inputs and
outputs for run inspection. Secrets fall back to the process environment.
"""
import os
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger()


class NodeContext:

    def __init__(
        self,
        secrets: Optional[Dict[str, str]] = None,
        run_id: Optional[str] = None,
        use_environ: bool = True,
    ):
        self.secrets = dict(secrets or {})
        self.run_id = run_id
        self.use_environ = use_environ
        self.inputs: List[Dict[str, Any]] = []
        self.outputs: List[Dict[str, Any]] = []
        self.warnings: List[str] = []
        self.progress: List[tuple] = []
        self._log = logger.bind(run_id=run_id) if run_id else logger

    def get_secret(self, key: str) -> Optional[str]:
        value = self.secrets.get(key)
        if value is None and self.use_environ:
            value = os.environ.get(key)
        return value or None

    def report_input(self, data: Dict[str, Any]) -> None:
        self.inputs.append(data)
        self._log.debug("node_input", **_loggable(data))

    def report_output(self, data: Dict[str, Any]) -> None:
        self.outputs.append(data)
        self._log.debug("node_output", **_loggable(data))

    def report_progress(self, percent: int, message: str) -> None:
        self.progress.append((percent, message))
        self._log.info("node_progress", percent=percent, message=message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)
        self._log.warning("node_warning", message=message)


def _loggable(data: Dict[str, Any]) -> Dict[str, Any]:
    # structlog reserves "event"
    return {("event_" if k == "event" else k): v for k, v in data.items()}
