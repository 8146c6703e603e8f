# autoscaler

Building blocks for a service that grows and shrinks a pool of build servers.

## Modules

- `autoscaler.types`: the `Server`, `Instance` and `InstanceCreateOpts`
  records, the `ServerState` and `ProviderType` enumerations, the
  `InstanceNotFound`, `ServerNotFound` and `InstanceError` exceptions, and the
  abstract `Provider` and `ServerStore` interfaces. `Server.to_dict()` and
  `Server.from_dict()` convert to and from the JSON form, with byte fields
  (keys and certificates) as base64.
- `autoscaler.metrics`: a small in-process metrics registry (`Counter`,
  `Histogram`, `GaugeFunc`, `Registry`) that can `gather()` snapshots or render
  the Prometheus text format with `exposition()`. `default_registry()` returns
  the process-wide registry. `Prometheus` records server create, boot and
  install times and error counts; `NopCollector` has the same methods but its
  measurements are never exported. `server_capacity` and `server_count`
  register gauges over the running servers of a store; `server_create` and
  `server_delete` wrap a provider so that successes and failures are counted.
- `autoscaler.http`: JSON response writers (`write_json`, `write_error`,
  `write_not_found`, `write_unauthorized`, `write_forbidden`,
  `write_bad_request`, `write_error_code`) and handlers for health checks
  (`handle_healthz`), version info (`handle_version`), engine state
  (`handle_varz`, `handle_engine_pause`, `handle_engine_resume`) and metrics
  (`handle_metrics`, optionally guarded by a bearer token).
- `autoscaler.servers_api`: handlers to list, find, create and delete
  servers in a `ServerStore`. Deleting a server normally marks it for
  shutdown; a server in the error state with no instance id, or any errored
  server when `force=true` is given, is removed from the store at once.
- `autoscaler.auth`: `check_drone(proto, host)`, middleware that looks up the
  request's bearer token at `<proto>://<host>/api/user` and admits only
  administrators (401 for a missing or rejected token, 403 for non-admins).
- `autoscaler.slack`: `SlackNotifier`, a `ServerStore` wrapper that posts to a
  Slack webhook when a server becomes running, stopped or errored, and
  `humanize_time` for uptime text such as `"1 hour"`.
- `autoscaler.locking`: `new_locker(driver)` (a real lock for `sqlite3`, a
  `NoopLocker` otherwise) and `is_conn_reset(err)`.

## Handlers

Each handler is a callable that takes a `werkzeug.wrappers.Request` and
returns a `werkzeug.wrappers.Response`. The find and delete server handlers
also take the server name as a second argument. A `Response` is itself a WSGI
application, so a handler can be served like this:

```python
from werkzeug.wrappers import Request

from autoscaler.http import handle_metrics
from autoscaler.metrics import Registry, server_count

registry = Registry()
store = server_count(my_store, registry)  # my_store implements ServerStore
metrics = handle_metrics("token", registry)


def app(environ, start_response):
    return metrics(Request(environ))(environ, start_response)
```

Set `HTTP_JSON_INDENT=true` in the environment before importing
`autoscaler.http` to indent JSON responses.

## What it does not do

The package has no server store backed by a database, no cloud provider
implementations, no scaling engine, no URL router and no command to start a
service. Those are supplied by the application: implement `ServerStore`,
`Provider` and an engine with `pause()`, `resume()` and `paused()`, and mount
the handlers under the WSGI server and router of your choice.

## Install

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```