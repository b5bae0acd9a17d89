"""Rotated text logs for edge-function events, keyed by client IP."""

from datetime import datetime, timezone
import json
import os
import threading
import traceback

from flask import has_request_context, request

LOG_ROTATE_MAX_BYTES = 5 * 1024 * 1024
LOG_ROTATE_BACKUP_COUNT = 5
LOG_SOURCE = "wallhub"
TRACEBACK_MAX_CHARS = 700

_IP_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")


def sanitize_log_fragment(text):
    """Collapse ``text`` onto one line with single spaces."""
    return " ".join(str(text or "").split())


def get_client_ip(headers=None, remote_addr=None):
    """Best-effort caller IP.

    Checks the CDN header, the first ``X-Forwarded-For`` hop and
    ``X-Real-IP`` before the socket address. Outside a request the source
    name is returned so boot lines stay attributable.
    """
    if headers is None:
        if not has_request_context():
            return LOG_SOURCE
        headers, remote_addr = request.headers, request.remote_addr
    for name in _IP_HEADERS:
        value = (headers.get(name) or "").split(",")[0].strip()
        if value:
            return value
    return (remote_addr or "").strip() or "unknown"


def mask_user_id(user_id):
    if not user_id:
        return "NULL"
    return f"{str(user_id)[:8]}..."


def _rotate_log_file(path, max_bytes=LOG_ROTATE_MAX_BYTES, backup_count=LOG_ROTATE_BACKUP_COUNT):
    """Shift ``path`` to ``path.1`` (and older backups up) once it is full."""
    if max_bytes <= 0 or backup_count <= 0:
        return
    try:
        if not path.exists() or path.stat().st_size < max_bytes:
            return
        for idx in range(backup_count - 1, 0, -1):
            older = path.with_name(f"{path.name}.{idx}")
            if older.exists():
                os.replace(older, path.with_name(f"{path.name}.{idx + 1}"))
        os.replace(path, path.with_name(f"{path.name}.1"))
    except OSError:
        # A failed rotation keeps appending to the current file.
        pass


def _format_line(action, command, rejection_message):
    stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    client_ip = sanitize_log_fragment(get_client_ip()) or "unknown"
    parts = [f"{stamp} <{client_ip}> [{LOG_SOURCE}/{sanitize_log_fragment(action) or 'unknown'}]"]
    detail = sanitize_log_fragment(command)
    if detail:
        parts.append(detail)
    reason = sanitize_log_fragment(rejection_message)
    if reason:
        parts.append(f"rejected: {reason}")
    return " ".join(parts)


def make_log_action(log_dir, log_file):
    """Return ``log_action(action, command=None, rejection_message=None)``.

    Writes are serialized with a lock because the server runs threaded.
    I/O errors are dropped so a full disk never fails a request.
    """
    lock = threading.Lock()

    def log_action(action, command=None, rejection_message=None):
        line = _format_line(action, command, rejection_message)
        with lock:
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
                _rotate_log_file(log_file)
                with log_file.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError:
                pass

    return log_action


def make_log_exception(log_action):
    """Return ``log_exception(context, exc)`` writing one ``error`` line."""

    def log_exception(context, exc):
        message = f"{context}: {type(exc).__name__}"
        text = sanitize_log_fragment(exc)
        if text:
            message += f": {text}"
        trace = sanitize_log_fragment(" | ".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
        if trace:
            message += f" | traceback: {trace[:TRACEBACK_MAX_CHARS]}"
        log_action("error", rejection_message=message)

    return log_exception


def log_structured(log_action, action, payload):
    """Emit one action line carrying a compact JSON payload."""
    try:
        text = json.dumps(payload, sort_keys=True, default=str)
    except (TypeError, ValueError):
        text = str(payload)
    log_action(action, command=text)
