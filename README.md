# wind

Building blocks for writing services, in plain Python with no third-party
dependencies.

## Modules

- **`wind.context`**: `Context`, an immutable chain of values that can also be
  cancelled or given a deadline. Create contexts with `background()`,
  `with_cancel(parent)` (returns the context and a cancel function) and
  `with_timeout(parent, seconds)`. A done context reports why through `err()`:
  `Canceled` or `DeadlineExceeded`. Helpers store and read a trace id
  (`with_trace_id`, which keeps an existing one, and `get_trace_id`) and a
  target host name for the balancer (`inject_target_host_name`,
  `extract_target_host_name`).
- **`wind.constants`**: shared context keys, messaging names, the registry
  group name and domain codes.
- **`wind.errors`**: `MetaError`, an exception with a code, a message, an
  `ErrorLabel` and an optional JSON data string. `with_code`, `with_message`,
  `extend_message` and `with_data` return modified copies. `to_status_error`
  encodes a `MetaError` as a `StatusError` whose details carry its fields, and
  `parse_error` turns any exception back into a `MetaError` (unknown ones get
  code 100). `server_middleware` wraps a handler so that any error it raises
  leaves as a `StatusError`; `client_middleware` wraps an invoker so that any
  error arrives as a `MetaError`. Predefined errors such as `SYS_ERR_TIMEOUT_ERR`
  and `PARAMS_ERROR` are module constants.
- **`wind.utils`**: string helpers (`first_upper`, `first_lower`,
  `gen_conv_id`, `md5_hex`, `struct_to_json`), time helpers (`use_time_to_str`,
  `format_time`, `current_millis`, `current_second`), `no_dash_uuid`, `exists`,
  `change_position`, a thread-safe `Rand`, snowflake ids (`SnowflakeNode`,
  `init_snowflake`, `get_snowflake_id`, `get_snowflake_id_int64`) and a
  `BufferPool` of reusable `io.BytesIO` buffers.
- **`wind.pool`**: `Pool`, a thread-safe pool of resources with a maximum
  size. `acquire` waits for a resource; `try_acquire` raises
  `NotAvailableError` instead. The `Resource` handles it returns offer
  `release`, `release_unused`, `destroy` and `hijack`. `create_resource` adds a
  warm idle resource, `acquire_all_idle` takes every idle one, `stat()` returns
  a `Stat` snapshot, and `close()` (or leaving a `with` block) destroys
  everything and makes later acquires raise `ClosedPoolError`.
- **`wind.rgroup`**: `Group` runs tasks in threads and `wait()` raises the
  first error. A task that dies from an exception outside `Exception` (such as
  `SystemExit`) is reported as a `TaskPanicError`. `limit(n)` caps how many
  tasks run at once. `with_context(ctx)` hands tasks `ctx`; `with_cancel(ctx)`
  hands them a derived context that is cancelled on the first failure or when
  `wait` returns.
- **`wind.breaker`**: `get_rule_by_scope` builds the default `BreakerRule`s for
  a `type.name.method` scope (`server`, `client` or `mongo`), adjusted by the
  most specific `BreakerOverride` a lookup function supplies. `server_scope`,
  `client_scope` and `scope_from_context` produce scope strings.
  `FuseRegistry` records breaker state changes, and `resource_in_fuse` asks the
  process-wide registry whether a resource is open or half-open.
- **`wind.discovery`**: `Instance` and `Address` records, the `Registry`
  protocol, `instances_to_addresses`, `StaticResolver` (resolves from a fixed
  map) and `RegistryResolver` (publishes a service's addresses and follows a
  registry subscription).
- **`wind.balancer`**: `build_picker` makes a `Picker` from ready connections
  and their addresses. `pick(ctx)` routes to a requested host, else to a
  requested label (falling back to `stable`), round-robin, skipping fused
  connections unless more than half would be skipped. It raises
  `NoSubConnError` when nothing fits.

## What it does not do

The package provides the pieces, not a running service. It has no RPC or HTTP
server or client, no client for a real service registry (`Registry` is only a
protocol to implement), no message-queue connection, and no tracing or
metrics backend. `wind.breaker` builds rules and tracks fused resources but
does not itself count requests or open breakers.

## Install

```
pip install .
```

## Example

```python
from wind.context import background
from wind.pool import Pool
from wind.rgroup import with_cancel

pool = Pool(lambda ctx: object(), lambda res: None, 2)
res = pool.try_acquire(background())
res.release()
print(pool.stat().total_resources())  # 1

group = with_cancel(background())
group.go(lambda ctx: None)
group.wait()
```

## Tests

```
pip install .[test]
pytest
```