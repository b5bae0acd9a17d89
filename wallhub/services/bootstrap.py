"""Startup checks and the serve loop for ``python -m wallhub.main``."""

BOOT_ERROR_MAX_CHARS = 500


def check_backend(settings, log_system):
    """Fail fast when the backend URL or service key is missing."""
    if not settings.is_configured():
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
    if not settings.anon_key:
        log_system("boot-warning", command="SUPABASE_ANON_KEY not set; token checks use the service key")


def default_boot_steps(settings, log_system):
    """Named callables run in order before the server accepts requests."""
    return [
        ("ensure_log_dir", lambda: settings.log_dir.mkdir(parents=True, exist_ok=True)),
        ("check_backend", lambda: check_backend(settings, log_system)),
    ]


def _guarded(name, func, log_system, log_exception):
    try:
        func()
    except Exception as exc:
        log_exception(f"boot_step/{name}", exc)
        reason = str(exc)[:BOOT_ERROR_MAX_CHARS] or f"{name} failed"
        log_system("boot-failed", command=name, rejection_message=reason)
        raise


def serve(app, settings, log_system, log_exception, boot_steps):
    """Run ``boot_steps`` then serve ``app`` threaded; any failure is logged and re-raised."""
    address = f"host={settings.web_host} port={settings.web_port}"
    log_system("boot-start", command=address)
    for name, func in boot_steps:
        _guarded(name, func, log_system, log_exception)
    log_system("boot-ready", command=address)
    _guarded(
        "app.run",
        lambda: app.run(host=settings.web_host, port=settings.web_port, threaded=True),
        log_system,
        log_exception,
    )
