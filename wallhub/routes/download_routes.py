"""Download token and file delivery routes."""

from flask import Response, request, stream_with_context

from wallhub.core.baas_client import BaasError
from wallhub.core.response_helpers import (
    NO_STORE,
    ServiceError,
    apply_cors,
    data_response,
    error_response,
    service_error_response,
)
from wallhub.services import download_flow
from wallhub.services.request_bindings import client_info, current_caller, json_body


STREAM_CHUNK_SIZE = 64 * 1024


def _stream_response(result):
    upstream = result["upstream"]

    def _generate():
        try:
            for chunk in upstream.iter_content(chunk_size=STREAM_CHUNK_SIZE):
                if chunk:
                    yield chunk
        finally:
            upstream.close()

    status = 206 if result.get("status") == 206 else 200
    response = Response(stream_with_context(_generate()), status=status, headers=result["headers"])
    return apply_cors(response)


def register_download_routes(app, ctx):
    """Register token issue and download redemption routes."""

    # Route: /functions/v1/generate-anonymous-token
    @app.route("/functions/v1/generate-anonymous-token", methods=["POST"])
    def generate_anonymous_token():
        """Issue a guest download token for a published wallpaper."""
        payload = json_body()
        try:
            data = download_flow.generate_anonymous_token(ctx, payload.get("wallpaperId"), client_info())
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/generate-anonymous-token", exc)
            return error_response("TOKEN_GENERATION_FAILED", "Failed to fetch wallpaper", 500)
        return data_response(data, cache_control=NO_STORE)

    # Route: /functions/v1/download-wallpaper
    @app.route("/functions/v1/download-wallpaper", methods=["POST"])
    def download_wallpaper():
        """Prepare a download session for the calling guest, free or premium user."""
        payload = json_body()
        try:
            caller = current_caller(ctx)
            data = download_flow.prepare_download(
                ctx,
                caller,
                payload.get("wallpaper_id"),
                payload.get("resolution") or download_flow.DEFAULT_RESOLUTION,
                client_info(),
            )
        except ServiceError as exc:
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/download-wallpaper", exc)
            return error_response("DOWNLOAD_PREPARATION_FAILED", "Failed to prepare download", 500)
        return data_response(data, cache_control=NO_STORE)

    # Route: /functions/v1/download-file
    @app.route("/functions/v1/download-file", methods=["GET"])
    def download_file():
        """Redeem a download token and stream the file."""
        token = (request.args.get("token") or "").strip()
        try:
            result = download_flow.redeem_download(ctx, token, request.headers.get("Range"))
        except ServiceError as exc:
            if exc.code != "TIMER_NOT_COMPLETED":
                ctx.log_action("download-file", rejection_message=f"{exc.code}: {exc.message}")
            return service_error_response(exc)
        except BaasError as exc:
            ctx.log_exception("route/download-file", exc)
            return error_response("DOWNLOAD_ERROR", "Download failed", 500)
        if result["kind"] == "json":
            return data_response(result["data"], cache_control=NO_STORE)
        return _stream_response(result)
