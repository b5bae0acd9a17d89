"""Unified download client.

Drives the same sequence a browser does against the edge functions: decide
the caller's tier, obtain a download token, sit out the ad countdown, then
fetch the file. Works for scripts and batch jobs that need wallpapers
without the web UI.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests
from requests.exceptions import RequestException

from wallhub.core.media import download_filename, extension_for
from wallhub.core.security import USER_TYPE_FREE, USER_TYPE_GUEST, USER_TYPE_PREMIUM, parse_timestamp


DEFAULT_TIMER_SETTINGS = {"guest_timer_duration": 15, "logged_in_timer_duration": 6}
MAX_TOKEN_ATTEMPTS = 3
PERMANENT_STATUSES = (401, 403, 404)
PERMANENT_MESSAGE_MARKERS = ("not available",)
CHUNK_SIZE = 64 * 1024


class DownloadError(Exception):
    """Failed download step; ``code`` is the backend error code when known."""

    def __init__(self, code, message, status=0, payload=None):
        super().__init__(f"{code}: {message}" if code else message)
        self.code = code
        self.message = message
        self.status = status
        self.payload = payload or {}


@dataclass
class DownloadPlan:
    """Outcome of opening a download for one wallpaper."""
    status: str
    user_type: str
    message: str = ""
    token: Optional[str] = None
    countdown_duration: int = 0
    download_url: Optional[str] = None
    prepared: Optional[dict] = None

    @property
    def ready(self) -> bool:
        return self.status == "ready"


def get_user_type(user, profile=None, now=None) -> str:
    """Return ``guest``, ``free`` or ``premium`` for a signed-in user."""
    if not user:
        return USER_TYPE_GUEST
    profile = profile or {}
    if profile.get("plan_type") == "premium":
        expires_at = parse_timestamp(profile.get("premium_expires_at"))
        now = now or datetime.now(tz=timezone.utc)
        if expires_at is None or expires_at > now:
            return USER_TYPE_PREMIUM
    return USER_TYPE_FREE


class UnifiedDownloader:
    """Client for the token, countdown and file endpoints."""

    def __init__(self, base_url, anon_key, access_token=None, user=None, profile=None,
                 session=None, sleep=time.sleep, timeout=30):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.user = user
        self.profile = profile
        self.http = session or requests.Session()
        self.sleep = sleep
        self.timeout = timeout

    @property
    def user_type(self) -> str:
        return get_user_type(self.user, self.profile)

    def _headers(self, anonymous=False):
        token = self.anon_key if anonymous or not self.access_token else self.access_token
        return {
            "Authorization": f"Bearer {token}",
            "apikey": self.anon_key,
            "Content-Type": "application/json",
        }

    def _call(self, method, function_name, *, json_body=None, params=None, anonymous=False, stream=False):
        url = f"{self.base_url}/functions/v1/{function_name}"
        try:
            return self.http.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=self._headers(anonymous),
                timeout=self.timeout,
                stream=stream,
            )
        except RequestException as exc:
            raise DownloadError("NETWORK_ERROR", str(exc)) from exc

    @staticmethod
    def _error_from(response, default_code):
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            return DownloadError(error.get("code") or default_code, error.get("message") or response.reason, response.status_code, error)
        return DownloadError(default_code, f"HTTP {response.status_code}", response.status_code, {})

    def fetch_timer_settings(self) -> dict:
        """Read guest and logged-in countdowns from the ad settings function."""
        settings = dict(DEFAULT_TIMER_SETTINGS)
        for action, key in (("get_guest", "guest_timer_duration"), ("get_logged_in", "logged_in_timer_duration")):
            try:
                response = self._call("POST", "ad-settings", json_body={"action": action}, anonymous=True)
            except DownloadError:
                continue
            if not response.ok:
                continue
            try:
                value = (response.json().get("data") or {}).get(key)
            except ValueError:
                value = None
            if value:
                settings[key] = int(value)
        return settings

    def timer_duration(self, user_type=None) -> int:
        user_type = user_type or self.user_type
        if user_type == USER_TYPE_PREMIUM:
            return 0
        settings = self.fetch_timer_settings()
        if user_type == USER_TYPE_GUEST:
            return settings["guest_timer_duration"]
        return settings["logged_in_timer_duration"]

    def request_anonymous_token(self, wallpaper_id) -> str:
        """Obtain a guest token, retrying transient failures with linear backoff."""
        last_error = None
        for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
            try:
                response = self._call(
                    "POST", "generate-anonymous-token", json_body={"wallpaperId": wallpaper_id}, anonymous=True
                )
            except DownloadError as exc:
                last_error = exc
            else:
                if response.ok:
                    token = (response.json().get("data") or {}).get("token")
                    if token:
                        return token
                    last_error = DownloadError("TOKEN_GENERATION_FAILED", "No token received from server", response.status_code)
                else:
                    last_error = self._error_from(response, "TOKEN_GENERATION_FAILED")
                    if _is_permanent(last_error):
                        raise last_error
            if attempt < MAX_TOKEN_ATTEMPTS:
                self.sleep(attempt * 1.0)
        raise DownloadError(
            "TOKEN_GENERATION_FAILED",
            f"Failed to generate download token after {MAX_TOKEN_ATTEMPTS} attempts: {last_error.message}",
            last_error.status,
        )

    def prepare(self, wallpaper_id, resolution="1080p") -> dict:
        """Ask ``download-wallpaper`` for a session as the signed-in user."""
        response = self._call(
            "POST", "download-wallpaper", json_body={"wallpaper_id": wallpaper_id, "resolution": resolution}
        )
        if not response.ok:
            raise self._error_from(response, "DOWNLOAD_PREPARATION_FAILED")
        return response.json().get("data") or {}

    def open(self, wallpaper, resolution="1080p") -> DownloadPlan:
        """Decide how ``wallpaper`` can be downloaded and prepare a token."""
        user_type = self.user_type
        if user_type == USER_TYPE_GUEST and wallpaper.get("is_premium"):
            return DownloadPlan("auth_required", user_type, "Please sign in to download premium wallpapers.")
        is_live = resolution == "video" and (wallpaper.get("live_video_url") or wallpaper.get("live_enabled"))
        if user_type == USER_TYPE_GUEST and is_live:
            return DownloadPlan("registration_required", user_type, "Create a free account to download live wallpapers.")

        if user_type == USER_TYPE_GUEST:
            token = self.request_anonymous_token(wallpaper["id"])
            return DownloadPlan(
                "ready",
                user_type,
                token=token,
                countdown_duration=self.timer_duration(user_type),
                download_url=f"{self.base_url}/functions/v1/download-file?token={token}",
            )

        prepared = self.prepare(wallpaper["id"], resolution)
        return DownloadPlan(
            "ready",
            user_type,
            token=prepared.get("token") or prepared.get("download_token"),
            countdown_duration=int(prepared.get("countdown_duration") or 0),
            download_url=prepared.get("download_url"),
            prepared=prepared,
        )

    def _fetch_file(self, token):
        return self._call("GET", "download-file", params={"token": token}, stream=True)

    def download(self, wallpaper, resolution="1080p", dest_dir=".") -> str:
        """Run the whole flow and write the file under ``dest_dir``.

        Returns the written path. Raises DownloadError when the tier does not
        allow the download or the backend refuses the token.
        """
        plan = self.open(wallpaper, resolution)
        if not plan.ready:
            raise DownloadError(plan.status.upper(), plan.message)
        if plan.countdown_duration > 0:
            self.sleep(plan.countdown_duration)

        response = self._fetch_file(plan.token)
        if response.status_code == 429:
            error = self._error_from(response, "TIMER_NOT_COMPLETED")
            response.close()
            self.sleep(int(error.payload.get("remaining_time") or 1))
            response = self._fetch_file(plan.token)
        if not response.ok:
            error = self._error_from(response, "DOWNLOAD_ERROR")
            response.close()
            raise error

        content_type = response.headers.get("Content-Type") or ""
        if content_type.startswith("application/json"):
            # Proxy failed server side; the body points at the file itself.
            fallback = response.json().get("data") or {}
            response.close()
            return self._download_fallback(fallback, dest_dir)

        filename = _filename_from_disposition(response.headers.get("Content-Disposition")) or download_filename(
            wallpaper.get("title"), resolution, extension_for(content_type, resolution)
        )
        return self._write_stream(response, os.path.join(dest_dir, filename))

    def _download_fallback(self, fallback, dest_dir):
        url = fallback.get("download_url") or fallback.get("url")
        if not url:
            raise DownloadError("DOWNLOAD_ERROR", "Download URL missing from fallback response")
        try:
            response = self.http.get(url, timeout=self.timeout, stream=True)
        except RequestException as exc:
            raise DownloadError("NETWORK_ERROR", str(exc)) from exc
        if not response.ok:
            response.close()
            raise DownloadError("DOWNLOAD_ERROR", f"HTTP {response.status_code}", response.status_code)
        filename = _safe_filename(fallback.get("filename")) or "wallpaper.jpg"
        return self._write_stream(response, os.path.join(dest_dir, filename))

    @staticmethod
    def _write_stream(response, path):
        try:
            with open(path, "wb") as handle:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
        finally:
            response.close()
        return path


def _filename_from_disposition(header):
    if not header or "filename=" not in header:
        return None
    return _safe_filename(header.split("filename=", 1)[1].strip().strip('"'))


def _safe_filename(name):
    """Last path component of a server supplied name, or None."""
    name = os.path.basename(str(name or "").replace("\\", "/"))
    return None if name in ("", ".", "..") else name


def _is_permanent(error):
    if error.status in PERMANENT_STATUSES:
        return True
    message = (error.message or "").lower()
    return any(marker in message for marker in PERMANENT_MESSAGE_MARKERS)
