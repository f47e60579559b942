"""
Structured Logging

JSON log lines tagged with whatever is in scope: the HTTP request id, the
authenticated caller, and the sync job being processed by a worker.
Services log sync runs, resolutions and job progress through
StructuredLogger so those events carry an entity and typed fields.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')
job_id_var: ContextVar[str] = ContextVar('job_id', default='')

CONTEXT_VARS = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "job_id": job_id_var,
}

PLAIN_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s] %(message)s'

QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per line; `event` holds StructuredLogger fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, var in CONTEXT_VARS.items():
            value = var.get()
            if value:
                payload[key] = value

        event = getattr(record, 'event', None)
        if event:
            payload["event"] = event

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Adapter whose helpers attach an `event` dict to the record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs.setdefault('extra', {}).update(self.extra)
        return msg, kwargs

    def event(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **fields
    ):
        event = {k: v for k, v in fields.items() if v is not None}
        if entity_type:
            event["entity_type"] = entity_type
        if entity_id:
            event["entity_id"] = entity_id
        self.log(level, msg, extra={"event": event})

    def sync_completed(self, sync_run_id: str, status: str, vehicle_count: int,
                       conflict_count: int, error_count: int, duration_ms: float = None):
        self.event(
            logging.INFO,
            f"Sync run finished: {status} ({vehicle_count} vehicles, {conflict_count} conflicts)",
            entity_type="sync_run",
            entity_id=sync_run_id,
            status=status,
            vehicle_count=vehicle_count,
            conflict_count=conflict_count,
            error_count=error_count,
            duration_ms=duration_ms
        )

    def conflict_resolved(self, conflict_id: str, conflict_type: str, resolution: str, action: str):
        self.event(
            logging.INFO,
            f"Conflict resolved: {conflict_type} -> {resolution} ({action})",
            entity_type="conflict",
            entity_id=conflict_id,
            conflict_type=conflict_type,
            resolution=resolution,
            action=action
        )

    def job_progress(self, job_id: str, processed: int, total: int):
        self.event(
            logging.DEBUG,
            f"Sync job progress {processed}/{total}",
            entity_type="sync_job",
            entity_id=job_id,
            processed=processed,
            total=total
        )

    def api_request(self, method: str, path: str, status_code: int, duration_ms: float):
        level = logging.WARNING if status_code >= 500 else logging.INFO
        self.event(
            level,
            f"{method} {path} - {status_code}",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Send every log line to stdout, as JSON when json_format is set.

    include_uvicorn routes uvicorn's own loggers through the same handler;
    the standalone worker passes False.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    if include_uvicorn:
        for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
            uvicorn_logger = logging.getLogger(name)
            uvicorn_logger.handlers = [handler]
            uvicorn_logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name), {})


def set_request_context(request_id: str, user_id: Optional[str] = None):
    request_id_var.set(request_id)
    if user_id:
        user_id_var.set(user_id)


def clear_request_context():
    request_id_var.set('')
    user_id_var.set('')
