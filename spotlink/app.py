"""Application configuration, request routing and the HTTP server."""

from __future__ import annotations

import argparse
import logging
import os
import posixpath
import re
import signal
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import timedelta
from http import HTTPStatus
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIServer, make_server
from wsgiref.util import is_hop_by_hop

from spotlink.middleware import CorsPolicy, RateLimiter, client_ip
from spotlink.responses import (
    Response,
    invalid_authentication_token_response,
    method_not_allowed_response,
    not_found_response,
    rate_limit_exceeded_response,
    server_error_response,
    write_json,
)
from spotlink.uploads import ServedFile, find_avatar, find_file, find_pdf

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
DEFAULT_TRUSTED_ORIGINS = ("http://localhost:5173", "http://localhost:3000")
DEFAULT_UPLOADS_ROOT = Path("../../uploads")
_DEFAULT_SMTP_PORT = 587
_QR_CACHE = "public, max-age=3600"


@dataclass
class Config:
    """Server settings, taken from command-line flags and the environment."""

    port: int = 4000
    env: str = "development"
    db_dsn: str = ""
    db_max_open_conns: int = 25
    db_max_idle_conns: int = 25
    db_max_idle_time: str = "15m"
    limiter_rps: float = 2.0
    limiter_burst: int = 4
    limiter_enabled: bool = True
    smtp_host: str = ""
    smtp_port: int = _DEFAULT_SMTP_PORT
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    oauth_redirect_uri: str = ""
    frontend_url: str = ""
    qr_storage_dir: str = "./qr_images"
    trusted_origins: list[str] = field(default_factory=lambda: list(DEFAULT_TRUSTED_ORIGINS))


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}
_INTEGER = re.compile(r"[+-]?[0-9]+")


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _smtp_port(environ: Mapping[str, str]) -> int:
    text = environ.get("SMTPPORT", "")
    if text == "":
        logger.warning("SMTPPORT is not set. Defaulting to %d", _DEFAULT_SMTP_PORT)
        return _DEFAULT_SMTP_PORT
    if not _INTEGER.fullmatch(text):
        logger.warning("SMTPPORT is not a number. Defaulting to %d", _DEFAULT_SMTP_PORT)
        return _DEFAULT_SMTP_PORT
    return int(text)


def parse_config(argv: Sequence[str] | None = None,
                 environ: Mapping[str, str] | None = None) -> Config:
    """Build the configuration from flags, with defaults from the environment."""
    env = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(description="Parking API server", allow_abbrev=False)

    def flag(name: str, **options: Any) -> None:
        parser.add_argument(f"-{name}", f"--{name}", **options)

    flag("port", dest="port", type=int, default=4000, help="API server port")
    flag("env", dest="env", default="development",
         help="Environment (development|staging|production|testing)")
    flag("db-dsn", dest="db_dsn", default=env.get("DB_DSN", ""), help="PostgreSQL DSN")
    flag("db-max-open-conns", dest="db_max_open_conns", type=int, default=25,
         help="PostgreSQL max open connections")
    flag("db-max-idle-conns", dest="db_max_idle_conns", type=int, default=25,
         help="PostgreSQL max idle connections")
    flag("db-max-idle-time", dest="db_max_idle_time", default="15m",
         help="PostgreSQL max connection idle time")
    flag("limiter-rps", dest="limiter_rps", type=float, default=2.0,
         help="Rate limiter maximum requests per second")
    flag("limiter-burst", dest="limiter_burst", type=int, default=4,
         help="Rate limiter maximum burst")
    flag("limiter-enabled", dest="limiter_enabled", type=_parse_bool, nargs="?",
         const=True, default=True, help="Enable rate limiter")
    flag("smtp-host", dest="smtp_host", default=env.get("SMTPHOST", ""), help="SMTP host")
    flag("frontend-url", dest="frontend_url", default=env.get("FRONTEND_URL", ""),
         help="Frontend URL")
    flag("smtp-port", dest="smtp_port", type=int, default=None, help="SMTP port")
    flag("smtp-username", dest="smtp_username", default=env.get("SMTPUSERNAME", ""),
         help="SMTP username")
    flag("smtp-password", dest="smtp_password", default=env.get("SMTPPASS", ""),
         help="SMTP password")
    flag("smtp-sender", dest="smtp_sender", default=env.get("SMTPSENDER", ""),
         help="SMTP sender")
    flag("oauth-google-client-id", dest="google_client_id",
         default=env.get("GOOGLE_CLIENT_ID", ""), help="Google OAuth Client ID")
    flag("oauth-google-client-secret", dest="google_client_secret",
         default=env.get("GOOGLE_CLIENT_SECRET", ""), help="Google OAuth Client Secret")
    flag("oauth-redirect-url", dest="oauth_redirect_uri",
         default=env.get("GOOGLE_REDIRECT_URI", ""), help="OAuth Redirect URL")
    flag("cors-trusted-origins", dest="cors_trusted_origins", default=None,
         help="Trusted CORS origins (space separated)")

    args = parser.parse_args(argv)
    smtp_port = args.smtp_port if args.smtp_port is not None else _smtp_port(env)
    if args.cors_trusted_origins is not None:
        origins = args.cors_trusted_origins.split()
    else:
        origins = list(DEFAULT_TRUSTED_ORIGINS)

    return Config(
        port=args.port,
        env=args.env,
        db_dsn=args.db_dsn,
        db_max_open_conns=args.db_max_open_conns,
        db_max_idle_conns=args.db_max_idle_conns,
        db_max_idle_time=args.db_max_idle_time,
        limiter_rps=args.limiter_rps,
        limiter_burst=args.limiter_burst,
        limiter_enabled=args.limiter_enabled,
        smtp_host=args.smtp_host,
        smtp_port=smtp_port,
        smtp_username=args.smtp_username,
        smtp_password=args.smtp_password,
        smtp_sender=args.smtp_sender,
        google_client_id=args.google_client_id,
        google_client_secret=args.google_client_secret,
        oauth_redirect_uri=args.oauth_redirect_uri,
        frontend_url=args.frontend_url,
        trusted_origins=origins,
    )


def dsn_with_sslmode(dsn: str) -> str:
    """Add ``sslmode=disable`` to a DSN that does not name an SSL mode."""
    if "sslmode=" in dsn:
        return dsn
    return dsn + ("&sslmode=disable" if "?" in dsn else "?sslmode=disable")


_DURATION_PART = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_MICROSECONDS = {
    "ns": 0.001, "us": 1.0, "µs": 1.0, "μs": 1.0, "ms": 1_000.0,
    "s": 1_000_000.0, "m": 60_000_000.0, "h": 3_600_000_000.0,
}


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``15m``, ``1h30m`` or ``-1.5s``."""
    if text == "0":
        return timedelta(0)
    sign, body = "", text
    if body[:1] in ("+", "-"):
        sign, body = body[0], body[1:]
    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(body):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_MICROSECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(body):
        raise ValueError(f'time: invalid duration "{text}"')
    return timedelta(microseconds=-total if sign == "-" else total)


def _plain_not_found() -> Response:
    return Response(
        status=int(HTTPStatus.NOT_FOUND),
        headers={"Content-Type": "text/plain; charset=utf-8",
                 "X-Content-Type-Options": "nosniff"},
        body=b"404 page not found\n",
    )


def _file_response(served: ServedFile | None) -> Response:
    if served is None:
        return _plain_not_found()
    return Response(
        status=int(HTTPStatus.OK),
        headers={"Content-Type": served.content_type, "Cache-Control": served.cache_control},
        body=served.path.read_bytes(),
    )


def _with_headers(base: Mapping[str, str], response: Response) -> Response:
    return replace(response, headers={**base, **response.headers})


def _match(pattern: str, path: str) -> dict[str, str] | None:
    pattern_parts = pattern.split("/")
    path_parts = path.split("/")
    if len(pattern_parts) != len(path_parts):
        return None
    params: dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected.startswith(":"):
            if not actual:
                return None
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


Handler = Callable[[dict[str, str]], Response]


class Application:
    """The API as a request handler and a WSGI application."""

    def __init__(self, config: Config | None = None,
                 uploads_root: str | Path = DEFAULT_UPLOADS_ROOT) -> None:
        self.config = config or Config()
        self.uploads_root = Path(uploads_root)
        self.limiter = RateLimiter(self.config.limiter_rps, self.config.limiter_burst,
                                   self.config.limiter_enabled)
        self.cors = CorsPolicy(self.config.trusted_origins)
        self._routes: list[tuple[str, str, Handler]] = [
            ("GET", "/v1/healthcheck", lambda params: self.healthcheck()),
            ("GET", "/v1/files/:type/:id", self._serve_files),
            ("GET", "/v1/avatars/:id", self._serve_avatar),
            ("GET", "/v1/pdfs/:id", self._serve_pdf),
            ("GET", "/v1/qr-images/:filename", self._serve_qr_image),
        ]

    def healthcheck(self) -> Response:
        return write_json(int(HTTPStatus.OK), {
            "status": "available",
            "system_info": {"environment": self.config.env, "version": VERSION},
        })

    def handle(self, method: str, path: str, headers: Mapping[str, str] | None = None,
               remote_addr: str = "127.0.0.1:0") -> Response:
        """Run one request through the middleware chain and the router."""
        request_headers = {name.lower(): value for name, value in (headers or {}).items()}
        try:
            return self._dispatch(method, path, request_headers, remote_addr)
        except Exception:
            logger.exception("request failed: %s %s", method, path)
            response = server_error_response()
            response.headers["Connection"] = "close"
            return response

    def _dispatch(self, method: str, path: str, request_headers: dict[str, str],
                  remote_addr: str) -> Response:
        decision = self.cors.apply(method, request_headers)
        base = dict(decision.headers)
        if decision.preflight:
            return Response(status=int(HTTPStatus.OK), headers=base)

        try:
            ip = client_ip(remote_addr)
        except ValueError as exc:
            logger.error("%s (request_method=%s request_url=%s)", exc, method, path)
            return _with_headers(base, server_error_response())
        if not self.limiter.allow(ip):
            return _with_headers(base, rate_limit_exceeded_response())

        base["Vary"] = base["Vary"] + ", Authorization"
        if request_headers.get("authorization", ""):
            # This service issues no tokens, so no credential can match a user.
            return _with_headers(base, invalid_authentication_token_response())

        return _with_headers(base, self._route(method, path))

    def _route(self, method: str, path: str) -> Response:
        allowed: set[str] = set()
        for route_method, pattern, handler in self._routes:
            params = _match(pattern, path)
            if params is None:
                continue
            if route_method == method:
                return handler(params)
            allowed.add(route_method)
        if not allowed:
            return not_found_response()
        allow = ", ".join(sorted(allowed | {"OPTIONS"}))
        if method == "OPTIONS":
            return Response(status=int(HTTPStatus.OK), headers={"Allow": allow})
        response = method_not_allowed_response(method)
        response.headers["Allow"] = allow
        return response

    def _serve_files(self, params: dict[str, str]) -> Response:
        return _file_response(find_file(params["type"], params["id"], self.uploads_root))

    def _serve_avatar(self, params: dict[str, str]) -> Response:
        return _file_response(find_avatar(params["id"], self.uploads_root / "avatars"))

    def _serve_pdf(self, params: dict[str, str]) -> Response:
        return _file_response(find_pdf(params["id"], self.uploads_root))

    def _serve_qr_image(self, params: dict[str, str]) -> Response:
        filename = params["filename"]
        if not filename or posixpath.basename(filename) != filename or "\\" in filename:
            return not_found_response()
        path = Path(self.config.qr_storage_dir) / filename
        if not path.is_file():
            return not_found_response()
        return Response(
            status=int(HTTPStatus.OK),
            headers={"Content-Type": "image/png", "Cache-Control": _QR_CACHE},
            body=path.read_bytes(),
        )

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> list[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "") or "/"
        headers = {key[5:].replace("_", "-"): value
                   for key, value in environ.items() if key.startswith("HTTP_")}
        if environ.get("CONTENT_TYPE"):
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        host = environ.get("REMOTE_ADDR", "")
        port = environ.get("REMOTE_PORT") or "0"
        remote_addr = f"[{host}]:{port}" if ":" in host else f"{host}:{port}"

        response = self.handle(method, path, headers, remote_addr)
        try:
            phrase = HTTPStatus(response.status).phrase
        except ValueError:
            phrase = ""
        header_list = [(name, value) for name, value in response.headers.items()
                       if not is_hop_by_hop(name)]
        start_response(f"{response.status} {phrase}".rstrip(), header_list)
        return [response.body]


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def _prune_forever(limiter: RateLimiter) -> None:
    while True:
        time.sleep(60)
        limiter.prune(180)


def _serve(app: Application) -> None:
    port = app.config.port
    server = make_server("", port, app, server_class=_ThreadingServer)

    def stop(signum: int, frame: Any) -> None:
        logger.info("shutting down server signal=%s", signal.Signals(signum).name)
        threading.Thread(target=server.shutdown, daemon=True).start()

    previous = {sig: signal.signal(sig, stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    threading.Thread(target=_prune_forever, args=(app.limiter,), daemon=True).start()
    logger.info("starting server addr=:%d env=%s", port, app.config.env)
    try:
        server.serve_forever()
    finally:
        server.server_close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    logger.info("stopped server addr=:%d", port)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the API server; returns the process exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    config = parse_config(argv)
    try:
        parse_duration(config.db_max_idle_time)
    except ValueError as exc:
        logger.critical("%s", exc)
        return 1
    app = Application(config)
    try:
        _serve(app)
    except OSError as exc:
        logger.critical("%s", exc)
        return 1
    return 0