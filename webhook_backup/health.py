"""Health check HTTP server for container orchestration."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webhook_backup.orchestrator import RunReport

logger = logging.getLogger(__name__)

# In-memory run state, reset on restart
backup_state: dict = {
    "state": "starting",
    "last_run": None,
    "last_outcome": None,
    "last_error": None,
    "runs_completed": 0,
    "runs_failed": 0,
    "runs_skipped": 0,
}


def reset_state() -> None:
    backup_state.update(
        state="starting",
        last_run=None,
        last_outcome=None,
        last_error=None,
        runs_completed=0,
        runs_failed=0,
        runs_skipped=0,
    )


def record_report(report: RunReport) -> None:
    """Fold a finished run into ``backup_state``."""
    backup_state["state"] = "ready"
    backup_state["last_run"] = (report.finished_at or datetime.now(timezone.utc)).isoformat()
    backup_state["last_outcome"] = report.outcome.value if report.outcome else None
    if report.succeeded:
        backup_state["runs_completed"] += 1
        backup_state["last_error"] = None
    else:
        backup_state["runs_failed"] += 1
        backup_state["last_error"] = report.error


def record_skip() -> None:
    backup_state["runs_skipped"] += 1


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler for health check endpoints."""

    def log_message(self, format, *args):
        pass  # Suppress default request logging

    def do_GET(self):
        if self.path in ("/health", "/"):
            self._respond(200, {"status": "healthy", **backup_state})
        elif self.path == "/ready":
            if backup_state["state"] in ("ready", "running"):
                self._respond(200, {"ready": True})
            else:
                self._respond(503, {"ready": False, "state": backup_state["state"]})
        elif self.path == "/live":
            self._respond(200, {"alive": True})
        else:
            self._respond(404, {"error": "not found"})

    def _respond(self, code: int, data: dict):
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(data).encode())


def start_health_server(port: int, host: str = "0.0.0.0") -> HTTPServer:
    """Start health check HTTP server in a daemon thread."""
    server = HTTPServer((host, port), HealthHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"Health server started on port {server.server_address[1]}")
    return server
