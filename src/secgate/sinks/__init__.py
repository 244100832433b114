from __future__ import annotations

from secgate.sinks.dispatch import ReportDispatcher, sink_name
from secgate.sinks.errors import SinkDeliveryError, SinkError
from secgate.sinks.notify import LoggingNotifier, Notifier, WebhookNotifier
from secgate.sinks.reports import JsonReportSink, ParquetFindingsSink, ReportSink

__all__ = [
    "JsonReportSink",
    "LoggingNotifier",
    "Notifier",
    "ParquetFindingsSink",
    "ReportDispatcher",
    "ReportSink",
    "SinkDeliveryError",
    "SinkError",
    "WebhookNotifier",
    "sink_name",
]
