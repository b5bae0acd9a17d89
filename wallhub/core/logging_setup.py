"""Logging setup helpers."""

from wallhub.core.action_logging import make_log_action, make_log_exception


def build_loggers(log_dir):
    """Create wallhub action/system log writers and exception logger."""
    log_action = make_log_action(log_dir, log_dir / "wallhub-actions.log")
    log_system = make_log_action(log_dir, log_dir / "wallhub.log")
    log_exception = make_log_exception(log_system)
    return log_action, log_system, log_exception
