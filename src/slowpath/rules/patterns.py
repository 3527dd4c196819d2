"""Catalogs the detectors match against: blocking calls, query methods per
database backend, lock and queue factories, task spawners."""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class BlockingCall:
    """A known-blocking operation and its async-aware replacement."""

    category: str
    alternative: str


_FILE_IO = "file I/O"
_SLEEP = "thread sleep"
_NETWORK = "network I/O"
_STDIN = "stdin read"
_PROCESS = "process spawn-and-wait"
LOCK_CATEGORY = "blocking lock acquisition"

_TO_THREAD = "asyncio.to_thread(...)"
_AIOFILES = "aiofiles.open or asyncio.to_thread(...)"
_HTTPX = "httpx.AsyncClient or aiohttp.ClientSession"
_SUBPROCESS = "asyncio.create_subprocess_exec"

# Fully-qualified callables (after import alias resolution)
BLOCKING_CALLS: dict[str, BlockingCall] = {
    "open": BlockingCall(_FILE_IO, _AIOFILES),
    "io.open": BlockingCall(_FILE_IO, _AIOFILES),
    "os.read": BlockingCall(_FILE_IO, _TO_THREAD),
    "os.write": BlockingCall(_FILE_IO, _TO_THREAD),
    "os.listdir": BlockingCall(_FILE_IO, _TO_THREAD),
    "os.remove": BlockingCall(_FILE_IO, "aiofiles.os.remove"),
    "os.unlink": BlockingCall(_FILE_IO, "aiofiles.os.remove"),
    "os.rename": BlockingCall(_FILE_IO, "aiofiles.os.rename"),
    "os.makedirs": BlockingCall(_FILE_IO, "aiofiles.os.makedirs"),
    "os.stat": BlockingCall(_FILE_IO, "aiofiles.os.stat"),
    "shutil.copy": BlockingCall(_FILE_IO, _TO_THREAD),
    "shutil.copyfile": BlockingCall(_FILE_IO, _TO_THREAD),
    "shutil.copytree": BlockingCall(_FILE_IO, _TO_THREAD),
    "shutil.move": BlockingCall(_FILE_IO, _TO_THREAD),
    "shutil.rmtree": BlockingCall(_FILE_IO, _TO_THREAD),
    "time.sleep": BlockingCall(_SLEEP, "asyncio.sleep"),
    "socket.create_connection": BlockingCall(_NETWORK, "asyncio.open_connection"),
    "socket.getaddrinfo": BlockingCall(_NETWORK, "loop.getaddrinfo"),
    "socket.gethostbyname": BlockingCall(_NETWORK, "loop.getaddrinfo"),
    "urllib.request.urlopen": BlockingCall(_NETWORK, _HTTPX),
    "requests.get": BlockingCall(_NETWORK, _HTTPX),
    "requests.post": BlockingCall(_NETWORK, _HTTPX),
    "requests.put": BlockingCall(_NETWORK, _HTTPX),
    "requests.patch": BlockingCall(_NETWORK, _HTTPX),
    "requests.delete": BlockingCall(_NETWORK, _HTTPX),
    "requests.head": BlockingCall(_NETWORK, _HTTPX),
    "requests.options": BlockingCall(_NETWORK, _HTTPX),
    "requests.request": BlockingCall(_NETWORK, _HTTPX),
    "input": BlockingCall(_STDIN, "loop.connect_read_pipe or asyncio.to_thread(input)"),
    "sys.stdin.read": BlockingCall(_STDIN, "loop.connect_read_pipe"),
    "sys.stdin.readline": BlockingCall(_STDIN, "loop.connect_read_pipe"),
    "sys.stdin.readlines": BlockingCall(_STDIN, "loop.connect_read_pipe"),
    "subprocess.run": BlockingCall(_PROCESS, _SUBPROCESS),
    "subprocess.call": BlockingCall(_PROCESS, _SUBPROCESS),
    "subprocess.check_call": BlockingCall(_PROCESS, _SUBPROCESS),
    "subprocess.check_output": BlockingCall(_PROCESS, _SUBPROCESS),
    "subprocess.getoutput": BlockingCall(_PROCESS, _SUBPROCESS),
    "os.system": BlockingCall(_PROCESS, "asyncio.create_subprocess_shell"),
    "os.popen": BlockingCall(_PROCESS, "asyncio.create_subprocess_shell"),
}

# Method names that block regardless of receiver type
BLOCKING_METHODS: dict[str, BlockingCall] = {
    "read_text": BlockingCall(_FILE_IO, _AIOFILES),
    "write_text": BlockingCall(_FILE_IO, _AIOFILES),
    "read_bytes": BlockingCall(_FILE_IO, _AIOFILES),
    "write_bytes": BlockingCall(_FILE_IO, _AIOFILES),
}

LOCK_ACQUIRE_ALTERNATIVE = "asyncio.Lock (await lock.acquire() / async with lock)"

# Calls whose function arguments run off the event loop thread
OFFLOAD_CALLS = frozenset(
    {
        "run_in_executor",
        "to_thread",
        "run_sync",
        "submit",
    }
)

# Matches `_lock`, `db_lock`, `rlock`, `mutex`, `sem`, `writeLock`; not `clock` or `block`
LOCK_NAME_RE = re.compile(
    r"(?i:(?:^|_)(?:r?locks?|mutex(?:es)?|sema?|semaphores?)(?:$|_|\d))"
    r"|[a-z0-9](?:Lock|Mutex|Semaphore)s?$"
)

LOCK_FACTORIES = frozenset(
    {
        "Lock",
        "RLock",
        "Semaphore",
        "BoundedSemaphore",
        "Condition",
        "CapacityLimiter",
    }
)

# Counting primitives; never treated as exclusive guards
SEMAPHORE_FACTORIES = frozenset({"Semaphore", "BoundedSemaphore", "CapacityLimiter"})
SEMAPHORE_NAME_RE = re.compile(
    r"(?i:(?:^|_)(?:sema?|semaphores?|limiter)(?:$|_|\d))|[a-z0-9](?:Semaphore|Limiter)s?$"
)

# Wrappers whose first argument is the awaited acquisition
ACQUIRE_WRAPPERS = frozenset({"asyncio.wait_for", "asyncio.shield"})


# -- database backends ------------------------------------------------------


@dataclass(frozen=True)
class QueryBackend:
    """Method names that execute a query for one database library, and the
    receiver evidence required before a call is attributed to it."""

    name: str
    methods: frozenset[str]
    receiver: re.Pattern[str] | None
    hint: str


QUERY_BACKENDS: dict[str, QueryBackend] = {
    "django": QueryBackend(
        name="django",
        methods=frozenset(
            {
                "get",
                "filter",
                "exclude",
                "all",
                "create",
                "get_or_create",
                "update_or_create",
                "count",
                "exists",
                "first",
                "last",
                "aggregate",
                "values",
                "values_list",
                "update",
                "delete",
                "bulk_create",
                "in_bulk",
                "raw",
            }
        ),
        # Only calls reached through a model manager: Model.objects.<method>
        receiver=None,
        hint="Fetch in bulk with filter(pk__in=...), select_related() or prefetch_related().",
    ),
    "sqlalchemy": QueryBackend(
        name="sqlalchemy",
        methods=frozenset(
            {"query", "execute", "scalar", "scalars", "get", "refresh", "merge"}
        ),
        receiver=re.compile(r"session|^sess$|^db$", re.IGNORECASE),
        hint="Load related rows in one statement with select(...).where(col.in_(...)) or selectinload().",
    ),
    "dbapi": QueryBackend(
        name="dbapi",
        methods=frozenset({"execute", "executemany"}),
        receiver=re.compile(r"cursor|^cur$|conn|connection|^db$", re.IGNORECASE),
        hint="Batch the statement with executemany() or a single WHERE ... IN (...) query.",
    ),
    "asyncpg": QueryBackend(
        name="asyncpg",
        methods=frozenset({"fetch", "fetchrow", "fetchval", "execute", "executemany"}),
        receiver=re.compile(r"conn|connection|pool|^db$", re.IGNORECASE),
        hint="Fetch in one round trip with WHERE id = ANY($1::int[]).",
    ),
}

DJANGO_ONLY_METHODS = frozenset({"refresh_from_db"})


# -- queues and spawns -------------------------------------------------------

QUEUE_FACTORIES = frozenset(
    {
        "asyncio.Queue",
        "asyncio.LifoQueue",
        "asyncio.PriorityQueue",
        "queue.Queue",
        "queue.LifoQueue",
        "queue.PriorityQueue",
        "multiprocessing.Queue",
        "multiprocessing.JoinableQueue",
    }
)

ALWAYS_UNBOUNDED_QUEUES = frozenset({"queue.SimpleQueue", "multiprocessing.SimpleQueue"})

SPAWN_FUNCTIONS = frozenset(
    {
        "asyncio.create_task",
        "asyncio.ensure_future",
        "threading.Thread",
        "multiprocessing.Process",
    }
)

SPAWN_METHODS = frozenset({"create_task", "ensure_future"})

# Receivers that already bound concurrency (task groups, nurseries, pools)
BOUNDED_SPAWNER_RE = re.compile(r"group|(?:^|_)tg$|nursery|pool|executor|limiter", re.IGNORECASE)


# -- loop allocation patterns ----------------------------------------------

REGEX_COMPILERS = frozenset({"re.compile", "regex.compile"})

COPY_FUNCTIONS = frozenset({"copy.copy", "copy.deepcopy"})

REDUCERS = frozenset({"any", "all", "sum", "min", "max", "sorted", "tuple", "frozenset", "set"})
