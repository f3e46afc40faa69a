"""Named verification checks run against test containers.

Each check passes environment variables to the image entrypoint, then
asserts on the running container through the runtime. A failed assertion
raises CheckFailure naming the check.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from firebird_images.builds.orchestrator import JobFailure
from firebird_images.containers.runtime import DockerRuntime, ExecResult
from firebird_images.containers.session import DATA_DIR
from firebird_images.matrix.targets import NoMatchError

logger = logging.getLogger(__name__)

TEST_DATABASE = "test.fdb"
TEST_DATABASE_PATH = f"{DATA_DIR}/{TEST_DATABASE}"
FIREBIRD_CONF = "/opt/firebird/firebird.conf"


class CheckFailure(JobFailure):
    """A named check's assertion did not hold."""

    def __init__(self, name: str, message: str, code: str = "check_failed") -> None:
        super().__init__(f"[{name}] {message}", code=code)
        self.name = name


CheckFn = Callable[[DockerRuntime, str], None]


@dataclass(frozen=True)
class Check:
    """A named verification.

    Attributes:
        name: Stable check name, used for filtering and reporting.
        description: What the check asserts.
        verify: Called with the runtime and container id once ready.
        env: Environment variables for the container.
    """

    name: str
    description: str
    verify: CheckFn
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


CHECKS: list[Check] = []


def check(
    name: str, description: str, env: Mapping[str, str] | None = None
) -> Callable[[CheckFn], CheckFn]:
    """Register a check function under a name."""

    def decorator(fn: CheckFn) -> CheckFn:
        CHECKS.append(
            Check(name=name, description=description, verify=fn, env=env or {})
        )
        return fn

    return decorator


def _expect_ok(name: str, result: ExecResult, what: str) -> None:
    if not result.ok:
        raise CheckFailure(
            name,
            f"{what} failed (exit {result.exit_code}): "
            f"{(result.stderr or result.stdout).strip()}",
        )


def _isql(
    runtime: DockerRuntime,
    container_id: str,
    user: str,
    password: str,
    sql: str,
) -> ExecResult:
    return runtime.exec(
        container_id,
        [
            "isql",
            "-quiet",
            "-user",
            user,
            "-password",
            password,
            f"localhost:{TEST_DATABASE_PATH}",
        ],
        input_text=sql,
    )


@check("server_starts", "Server process is running after startup")
def _server_starts(runtime: DockerRuntime, container_id: str) -> None:
    result = runtime.exec(container_id, ["pgrep", "-f", "firebird"])
    _expect_ok("server_starts", result, "Looking up the firebird process")


@check(
    "creates_database",
    "FIREBIRD_DATABASE creates a database in the data directory",
    env={"FIREBIRD_DATABASE": TEST_DATABASE},
)
def _creates_database(runtime: DockerRuntime, container_id: str) -> None:
    result = runtime.exec(container_id, ["test", "-f", TEST_DATABASE_PATH])
    _expect_ok("creates_database", result, f"Checking {TEST_DATABASE_PATH}")


@check(
    "creates_user",
    "FIREBIRD_USER/FIREBIRD_PASSWORD create a user able to connect",
    env={
        "FIREBIRD_DATABASE": TEST_DATABASE,
        "FIREBIRD_USER": "alice",
        "FIREBIRD_PASSWORD": "bird",
    },
)
def _creates_user(runtime: DockerRuntime, container_id: str) -> None:
    result = _isql(
        runtime,
        container_id,
        "alice",
        "bird",
        "SELECT CURRENT_USER FROM RDB$DATABASE;\n",
    )
    _expect_ok("creates_user", result, "Connecting as alice")
    if "ALICE" not in result.stdout.upper():
        raise CheckFailure("creates_user", f"Unexpected isql output: {result.stdout!r}")


@check(
    "sets_sysdba_password",
    "ISC_PASSWORD sets the SYSDBA password",
    env={"FIREBIRD_DATABASE": TEST_DATABASE, "ISC_PASSWORD": "fb-secret"},
)
def _sets_sysdba_password(runtime: DockerRuntime, container_id: str) -> None:
    result = _isql(
        runtime, container_id, "SYSDBA", "fb-secret", "SELECT 1 FROM RDB$DATABASE;\n"
    )
    _expect_ok("sets_sysdba_password", result, "Connecting as SYSDBA")


@check(
    "sets_timezone",
    "TZ sets the container time zone",
    env={"TZ": "America/Los_Angeles"},
)
def _sets_timezone(runtime: DockerRuntime, container_id: str) -> None:
    result = runtime.exec(container_id, ["date", "+%Z"])
    _expect_ok("sets_timezone", result, "Reading the time zone")
    zone = result.stdout.strip()
    if zone not in ("PST", "PDT"):
        raise CheckFailure("sets_timezone", f"Expected PST/PDT, got {zone!r}")


@check(
    "applies_config_overrides",
    "FIREBIRD_CONF_<key> variables are written to firebird.conf",
    env={"FIREBIRD_CONF_WireCrypt": "Disabled"},
)
def _applies_config_overrides(runtime: DockerRuntime, container_id: str) -> None:
    result = runtime.exec(container_id, ["cat", FIREBIRD_CONF])
    _expect_ok("applies_config_overrides", result, f"Reading {FIREBIRD_CONF}")
    pattern = re.compile(r"^\s*WireCrypt\s*=\s*Disabled\s*$", re.MULTILINE)
    if not pattern.search(result.stdout):
        raise CheckFailure(
            "applies_config_overrides", "WireCrypt = Disabled not set in firebird.conf"
        )


def select_checks(name_filter: str | None = None) -> list[Check]:
    """Return registered checks whose name contains name_filter.

    Raises:
        NoMatchError: If no check matches.
    """
    if not name_filter:
        return list(CHECKS)

    selected = [c for c in CHECKS if name_filter in c.name]
    if not selected:
        raise NoMatchError(f"No checks match '{name_filter}'")
    return selected


__all__ = [
    "CHECKS",
    "Check",
    "CheckFailure",
    "check",
    "select_checks",
]
