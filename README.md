# pvz

The business core of an order pickup point. It holds the rules for accepting
orders, handing them to customers, taking them back and returning them to the
courier. It also covers:

- packaging costs and weight limits,
- importing orders from JSON files,
- salted password hashes,
- batched audit logging to the log output and to a storage back end.

The package uses only the standard library.

## Install

```
pip install .
pip install ".[test]"   # with pytest
```

## Models

`pvz.models` defines the following types:

- the enums `OrderState` (`accepted`, `delivered`, `returned`), `PackageType`
  (`bag`, `box`, `film`), `WrapperType` (`film`) and `AuditLogType`
  (`request`, `response`, `order_status`);
- the dataclasses `Order`, `AuditLog` and `User`.

`AuditLog.to_dict()` returns a JSON-serialisable dict of the entry. In that
dict the timestamp is in ISO format.

## Packaging

```python
from pvz.models import PackageType, WrapperType
from pvz.packaging import create_packager

packager = create_packager(PackageType.BOX, WrapperType.FILM)
packager.validate_weight(12.0)   # raises PackageWeightExceededError above 30
packager.additional_cost()       # 21.0: box 20 + film 1
packager.description()           # "box + film"
```

| Package | Extra cost | Max weight |
|---------|------------|------------|
| bag     | 5          | 10         |
| box     | 20         | 30         |
| film    | 1          | no limit   |

A film wrapper (`WrapperDecorator`) adds 1 to the cost of the packaging under
it. Errors are raised as follows:

- An unknown or missing package type raises `UnknownPackageTypeError`.
- An unknown wrapper type raises `UnknownWrapperTypeError`.

All packaging errors derive from `PackagingError`, which is a `ValueError`.
`bag_packager()`, `box_packager()` and `film_packager()` build the base
packagers directly.

## Orders

`pvz.service.OrderService(repo, audit_logger, cache)` handles the order
lifecycle. You supply the three collaborators:

| Collaborator | Methods it must have |
|--------------|----------------------|
| `repo` | `create`, `update`, `delete`, `get_by_id`, `list`, `list_with_cursor`, `list_returns_with_cursor` |
| `cache` | `set_order`, `delete_order`, `clear_order_cache`, `get_order`, `get_order_history` |
| `audit_logger` | `log_order_status_change(order_id, old_status, new_status)` |

A failed cache read falls back to the repository. Datetimes must be
timezone-aware, because the service compares them with the current UTC time.

- `accept_order(order_id, customer_id, deadline, weight, cost, package_type=None, wrapper=None)`
  stores the order and returns it. Any packaging cost is added to `cost`. It
  raises `InvalidOrderIdError`, `StorageDeadlinePassedError`,
  `OrderExistsError`, `NegativeWeightError`, `NegativeCostError` or a
  packaging error.
- `deliver_order(order_id, customer_id, now)` returns the delivered order. It
  raises `WrongCustomerError`, `WrongStateError` or `StorageExpiredError`.
- `process_return_order(order_id, customer_id, now)` returns the returned
  order. A customer may return an order up to 48 hours after delivery
  (`RETURN_WINDOW`). It raises `WrongCustomerError`, `NotDeliveredError` or
  `ReturnExpiredError`.
- `return_order_to_courier(order_id)` deletes the order once its storage
  deadline has passed, or at any time once it has been returned. It raises
  `OrderAlreadyDeliveredError` or `DeadlineNotExpiredError`.
- `order_history(search_term="")` lists orders newest first. With no search
  term it reads from the cache first.
- `get_order_by_id(order_id)` reads the cache, then the repository. It caches
  orders that are not returned and whose deadline has not passed.
- `clear_database()` deletes every order, empties the cache and returns the
  number of orders deleted.
- `list_orders_with_cursor(...)` and `list_returns_with_cursor(...)` pass the
  call through to the repository.

Every rule violation derives from `OrderServiceError`.

## Importing orders from a file

`OrderService.accept_orders_from_file(path)` reads a JSON array like the one
below. It accepts the orders one by one and stops at the first failure:

```json
[{"id": 1, "customer_id": 7, "deadline_at": "2030-01-02T15:04:05",
  "weight": 2.5, "cost": 100, "package_type": "bag", "wrapper": "film"}]
```

`deadline_at` takes one of two forms:

- a duration counted from now, such as `72h`, `1h30m` or `300ms`;
- a timestamp in the form `YYYY-MM-DDTHH:MM:SS`, read as UTC.

The helpers live in `pvz.orderfile`:

- `read_orders_from_file` raises `OrderFileError` when the file cannot be
  opened, read or parsed.
- `parse_duration` parses duration strings.
- `parse_deadline` raises `InvalidDateFormatError` when the string is neither
  a duration nor a timestamp.
- `process_packaging` maps packaging names to types.

## Audit logging

```python
from pvz.audit import AuditLogger

with AuditLogger(audit_repo, workers_num=2, batch_size=5, batch_timeout=0.5) as audit:
    audit.log_order_status_change(1, "none", "accepted")
```

Each entry goes to two pools of batching worker threads:

- **Log output** (`StdoutLogProcessor`): writes each entry as indented JSON to
  the `pvz.audit` logger at INFO level. To keep only some entries, list
  case-insensitive substrings under `stdout_filters` in the JSON file at
  `filter_config_path` (default `audit_filters.json`). `load_filter_config`
  reads that file. If the file is missing, no filters apply.
- **Storage** (`DbLogProcessor`): passes each batch to
  `audit_repo.create_logs_with_tasks(logs)`.

A batch is processed when it reaches `batch_size` entries or when
`batch_timeout` seconds pass.

`log` never blocks. Entries that do not fit in the queue wait in an overflow
list and are moved to the queue periodically.

`shutdown()` flushes everything and waits for the workers. Anything still in
the overflow list at that point is written to the log output. Calling `log`
after shutdown raises `RuntimeError`.

`pvz.records` converts between `AuditLog` and its stored form,
`AuditLogRecord`. In the stored form, empty fields become `None` and the body
is held as JSON text.

## Users

- `pvz.records.hash_password` stores a password as a salted SHA-256 hash,
  `"salt:digest"` in base64.
- `pvz.records.check_password` checks a password against such a hash.
- `pvz.admin.init_default_user(repo)` creates an `admin` user with the `admin`
  role when `repo.list("")` returns no users. It returns the created user, or
  `None` if it created nothing. It logs failures and does not raise them.

## What this package does not do

The package has no database, no cache, no HTTP API and no command-line
program. It defines the rules and the audit pipeline only. Storage, caching and
serving requests are left to the objects you pass in.