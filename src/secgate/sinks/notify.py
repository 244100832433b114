from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from secgate.objects import PipelineRun, RunState
from secgate.sinks.errors import SinkDeliveryError

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, run: PipelineRun) -> None: ...


class LoggingNotifier:
    name = "log"

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def notify(self, run: PipelineRun) -> None:
        level = {
            RunState.PUBLISHED: logging.INFO,
            RunState.DENIED: logging.WARNING,
        }.get(run.state, logging.ERROR)
        self.logger.log(level, "%s", run.summary())


class WebhookNotifier:
    name = "webhook"

    def __init__(self, url: str, *, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout

    def build_payload(self, run: PipelineRun) -> dict[str, Any]:
        return {"text": run.summary(), "run": run.to_dict()}

    def notify(self, run: PipelineRun) -> None:
        try:
            response = requests.post(
                self.url, json=self.build_payload(run), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SinkDeliveryError(self.name, str(exc)) from exc
