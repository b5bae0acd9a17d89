"""Download naming, URL validation and text sanitizing helpers."""

import re
from urllib.parse import urlparse


VIDEO_FORMATS = ("mp4", "webm", "mov", "avi")
SEARCH_TERM_MAX_LENGTH = 100
AD_HTML_MAX_LENGTH = 10_000

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_JS_SCHEME_RE = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER_RE = re.compile(r'on\w+="[^"]*"', re.IGNORECASE)


def validate_video_url(url):
    """Return ``(is_valid, detected_format, message)`` for a live video URL."""
    if not url or not str(url).strip():
        return False, None, "Video URL cannot be empty"
    parsed = urlparse(str(url).strip())
    if not parsed.scheme or not parsed.netloc:
        return False, None, "Invalid URL format"
    lowered = str(url).lower()
    detected = "unknown"
    for fmt in VIDEO_FORMATS:
        if f".{fmt}" in lowered:
            detected = fmt
            break
    return True, detected, f"Video URL validated (detected format: {detected})"


def download_filename(title, resolution, extension=".jpg"):
    """Build ``<Title_Words>-<resolution><ext>`` for Content-Disposition."""
    cleaned = _NON_ALNUM_RE.sub("", str(title or "wallpaper"))
    cleaned = _WHITESPACE_RE.sub("_", cleaned.strip()) or "wallpaper"
    return f"{cleaned}-{resolution}{extension}"


def extension_for(content_type, resolution):
    """Pick a file extension from the upstream content type."""
    lowered = (content_type or "").lower()
    if resolution == "video":
        if "video/webm" in lowered:
            return ".webm"
        return ".mp4"
    if "image/" in lowered:
        if "png" in lowered:
            return ".png"
        if "webp" in lowered:
            return ".webp"
        if "gif" in lowered:
            return ".gif"
    return ".jpg"


def storage_object_path(image_url, bucket="wallpapers"):
    """Return the object path of a public storage URL, else the input."""
    marker = f"/storage/v1/object/public/{bucket}/"
    if image_url and marker in image_url:
        return image_url.split(marker, 1)[1]
    return image_url


def is_storage_url(url):
    return bool(url) and "/storage/v1/" in url


def url_host(url):
    """Hostname of ``url`` or ``internal`` when it has none."""
    if not url:
        return "internal"
    return urlparse(url).hostname or "internal"


def sanitize_search_term(term):
    """Trim a free-text search and strip PostgREST grouping characters."""
    if not term:
        return ""
    cleaned = str(term).strip().replace("(", "").replace(")", "").replace("*", "").replace(",", " ")
    return cleaned[:SEARCH_TERM_MAX_LENGTH].strip()


def sanitize_ad_html(html):
    """Remove scripts, ``javascript:`` URLs and inline handlers."""
    if not html:
        return html
    cleaned = _SCRIPT_RE.sub("", html)
    cleaned = _JS_SCHEME_RE.sub("", cleaned)
    return _INLINE_HANDLER_RE.sub("", cleaned)
