# spotlink

The building blocks of a parking service API, with a small WSGI application on top. It needs nothing beyond the standard library.

The package is made up of these modules:

| Module | What it holds |
|---|---|
| `spotlink.records` | `RecordNotFoundError`, `EditConflictError` and `FailedValidationError`, plus the `add_error` and `check` helpers that collect validation messages in a dict |
| `spotlink.filters` | `Filters`, for paging and sorting; `Metadata`; `validate_filters`; `calculate_metadata` |
| `spotlink.notifications` | `Notification`, `NotificationType`, `validate_notification`, and `NotificationModel`, which stores notifications in an SQLite connection |
| `spotlink.parking_lots` | `ParkingLot`, `validate_parking_lot`, `haversine_km`, and `ParkingLotModel`, which stores lots in SQLite and can search them by distance |
| `spotlink.responses` | `Response`, `write_json`, and the standard error replies: `not_found_response`, `rate_limit_exceeded_response` and the rest |
| `spotlink.jsonio` | `read_json`, `read_id_param`, `read_string`, `read_csv` and `read_int`; each raises `BadRequestError` on bad input |
| `spotlink.uploads` | `save_pdf` and `save_avatar`, which store base64 uploads after checking their magic bytes; `avatar_data_uri`; `find_avatar`, `find_pdf` and `find_file`, which locate files to serve |
| `spotlink.middleware` | `TokenBucket`, `RateLimiter` (one bucket per client), `client_ip`, and `CorsPolicy` |
| `spotlink.app` | `Config`, `parse_config`, `dsn_with_sslmode`, `parse_duration`, the `Application` (a WSGI app), and `main` |

## Installation

```
pip install .
```

To install pytest as well:

```
pip install ".[test]"
```

## Running the server

```
spotlink --port 4000 --env development
```

The server is a threaded `wsgiref` server and listens on all interfaces. It stops cleanly on SIGINT or SIGTERM. Every minute it forgets rate-limiter clients that have not been seen for three minutes.

Each flag can be written with one dash or with two. These are the flags:

- `port`
- `env`
- `db-dsn`
- `db-max-open-conns`
- `db-max-idle-conns`
- `db-max-idle-time`
- `limiter-rps` (default 2)
- `limiter-burst` (default 4)
- `limiter-enabled` (default true)
- `smtp-host`
- `smtp-port`
- `smtp-username`
- `smtp-password`
- `smtp-sender`
- `frontend-url`
- `oauth-google-client-id`
- `oauth-google-client-secret`
- `oauth-redirect-url`
- `cors-trusted-origins`

When a flag is not given, some settings take their default from the environment:

| Setting | Environment variable |
|---|---|
| `db-dsn` | `DB_DSN` |
| `smtp-host` | `SMTPHOST` |
| `smtp-port` | `SMTPPORT` (587 if it is unset or not a number) |
| `smtp-username` | `SMTPUSERNAME` |
| `smtp-password` | `SMTPPASS` |
| `smtp-sender` | `SMTPSENDER` |
| `frontend-url` | `FRONTEND_URL` |
| `oauth-google-client-id` | `GOOGLE_CLIENT_ID` |
| `oauth-google-client-secret` | `GOOGLE_CLIENT_SECRET` |
| `oauth-redirect-url` | `GOOGLE_REDIRECT_URI` |

`--cors-trusted-origins` takes a list separated by spaces. Without it, the trusted origins are `http://localhost:5173` and `http://localhost:3000`.

`main` checks that `db-max-idle-time` is a valid duration, such as `15m`, and exits with status 1 if it is not.

## Routes

All routes answer `GET`:

| Route | Response |
|---|---|
| `/v1/healthcheck` | `{"status": "available", "system_info": {"environment": ..., "version": "1.0.0"}}` |
| `/v1/avatars/:id` | An avatar from `<uploads>/avatars`, with `.jpg`, `.jpeg`, `.png` or `.gif` extension. If it is missing, `default.png` is served instead. |
| `/v1/pdfs/:id` | `<uploads>/<id>.pdf` |
| `/v1/files/:type/:id` | `type` is `avatars` or `pdfs`, and the file is found as in the two routes above |
| `/v1/qr-images/:filename` | A PNG from `Config.qr_storage_dir`, which defaults to `./qr_images` |

By default the uploads root is `../../uploads`. A different root can be passed to `Application`.

Every request goes through the same steps:

1. The CORS policy. A preflight request from a trusted origin is answered here with 200.
2. The per-address rate limiter. A client over its limit gets 429.
3. Routing. An unknown path gets 404, and a wrong method gets 405 with an `Allow` header.

An unexpected error becomes a 500 reply with `Connection: close`.

## Using the library

Validation functions return a dict that maps each field name to a message. The dict is empty when the input is valid:

```python
from spotlink.filters import Filters, validate_filters, calculate_metadata

filters = Filters(page=1, page_size=20, sort="-created_at",
                  sort_safelist=["id", "created_at", "-id", "-created_at"])
validate_filters(filters)           # {}
filters.sort_column()               # "created_at"
filters.sort_direction()            # "DESC"
filters.offset()                    # 0
calculate_metadata(45, 1, 20).to_dict()
# {"current_page": 1, "page_size": 20, "first_page": 1, "last_page": 3, "total_records": 45}
```

`FailedValidationError(errors)` wraps such a dict in an exception for callers that want to raise it.

Each storage model takes an `sqlite3.Connection` and creates its own tables:

```python
import sqlite3
import uuid
from spotlink.notifications import Notification, NotificationModel, NotificationType

model = NotificationModel(sqlite3.connect(":memory:"))
note = Notification(user_id=uuid.uuid4(), type=NotificationType.PAYMENT_DUE,
                    title="Payment due", message="Your parking fee is due.")
model.insert(note)                  # fills in note.id and note.created_at
model.get_unread_count_for_user(note.user_id)   # 1
```

A lookup that finds nothing raises `RecordNotFoundError`. `ParkingLotModel.update` raises `EditConflictError` when the lot's version is out of date.

Rate limiting is per client address:

```python
from spotlink.middleware import RateLimiter, client_ip

limiter = RateLimiter(rps=2, burst=4)
limiter.allow(client_ip("203.0.113.5:51000"))   # True until the burst is used up
```

The application can be mounted in any WSGI server. It can also be called directly:

```python
from spotlink.app import Application, parse_config

app = Application(parse_config([], {}), "uploads")
response = app.handle("GET", "/v1/healthcheck", {}, "127.0.0.1:1234")
response.status      # 200
response.json()      # {"status": "available", "system_info": {...}}
```

## What it does not do

- **No accounts.** There are no user accounts, vehicles, QR-code generation or verification, e-mail sending or Google sign-in. The SMTP, OAuth and frontend settings are parsed but nothing uses them.
- **No credentials.** No authentication tokens are issued. Any request that carries an `Authorization` header is answered with 401 `invalid or missing authentication token`.
- **No database server.** The server connects to no database. The DSN and connection-pool settings are only read, and `NotificationModel` and `ParkingLotModel` work only on an SQLite connection that you supply.
- **No routes for the models.** Notifications and parking lots are available as a library only. The server has no routes for them.