"""
Mock adapters — in-memory test doubles for every capability port.

Used by ``--mock`` runs to simulate provisioning without touching the
host, and by the test suite. Each mock records its calls and can be
configured to fail specific operations.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping, Sequence
from pathlib import PurePosixPath

from autorpi.adapters.base import (
    Downloader,
    FileWriter,
    PackageInstaller,
    ProcessRunner,
    Rebooter,
    ServiceManager,
)
from autorpi.core.models.receipt import Receipt


class MockProcessRunner(ProcessRunner):
    """Records commands; succeeds unless a matching prefix is configured.

    Responses are matched by command prefix (the longest configured
    prefix wins), so ``set_failure("id -u")`` fails every ``id -u`` call.
    """

    def __init__(self, programs: Sequence[str] = ()):
        self._programs = set(programs)
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[str] = []
        self._envs: list[Mapping[str, str] | None] = []

    @property
    def name(self) -> str:
        return "mock-shell"

    @property
    def call_log(self) -> list[str]:
        """Every command received, as a shell-quoted string."""
        return self._call_log

    def calls_matching(self, prefix: str) -> list[str]:
        return [c for c in self._call_log if c.startswith(prefix)]

    def add_program(self, *programs: str) -> None:
        self._programs.update(programs)

    def remove_program(self, *programs: str) -> None:
        self._programs.difference_update(programs)

    def set_response(self, prefix: str, receipt: Receipt) -> None:
        self._responses[prefix] = receipt

    def set_output(self, prefix: str, output: str) -> None:
        self._responses[prefix] = Receipt.success(
            adapter=self.name, operation=prefix, output=output, return_code=0
        )

    def set_failure(self, prefix: str, error: str = "Mock failure", return_code: int = 1) -> None:
        self._responses[prefix] = Receipt.failure(
            adapter=self.name, operation=prefix, error=error, return_code=return_code
        )

    def clear_response(self, prefix: str) -> None:
        self._responses.pop(prefix, None)

    def which(self, program: str) -> bool:
        return program in self._programs

    def run(
        self,
        argv: Sequence[str],
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
    ) -> Receipt:
        return self._dispatch(shlex.join(argv), env)

    def shell(self, command: str, env: Mapping[str, str] | None = None) -> Receipt:
        return self._dispatch(command, env)

    def _dispatch(self, command: str, env: Mapping[str, str] | None) -> Receipt:
        self._call_log.append(command)
        self._envs.append(env)
        matches = [p for p in self._responses if command.startswith(p)]
        if matches:
            receipt = self._responses[max(matches, key=len)]
            return receipt.model_copy(update={"operation": command})
        return Receipt.success(adapter=self.name, operation=command, return_code=0)

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._envs.clear()
        self._responses.clear()


class MockPackageInstaller(PackageInstaller):
    def __init__(self, installed: Sequence[str] = ()):
        self.installed: set[str] = set(installed)
        self.install_calls: list[list[str]] = []
        self.updates = 0
        self.upgrades = 0
        self._failing: set[str] = set()

    @property
    def name(self) -> str:
        return "mock-packages"

    def set_failure(self, *packages: str) -> None:
        self._failing.update(packages)

    def update(self) -> Receipt:
        self.updates += 1
        return Receipt.success(adapter=self.name, operation="update")

    def install(self, packages: Sequence[str], no_recommends: bool = True) -> Receipt:
        operation = f"install {' '.join(packages)}"
        self.install_calls.append(list(packages))
        failing = [p for p in packages if p in self._failing]
        if failing:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Unable to locate package {', '.join(failing)}",
            )
        self.installed.update(packages)
        return Receipt.success(adapter=self.name, operation=operation)

    def is_installed(self, package: str) -> bool:
        return package in self.installed

    def full_upgrade(self) -> Receipt:
        self.upgrades += 1
        return Receipt.success(adapter=self.name, operation="full-upgrade")


class MockServiceManager(ServiceManager):
    def __init__(self, active: Sequence[str] = ()):
        self.enabled: set[str] = set()
        self.active: set[str] = set(active)
        self.disabled: set[str] = set()
        self.restarts: list[str] = []
        self.reloads = 0
        self._failing: set[str] = set()

    @property
    def name(self) -> str:
        return "mock-services"

    def set_failure(self, *units: str) -> None:
        self._failing.update(units)

    def _result(self, operation: str, unit: str) -> Receipt:
        if unit in self._failing:
            return Receipt.failure(
                adapter=self.name, operation=f"{operation} {unit}", error=f"Failed to {operation} {unit}"
            )
        return Receipt.success(adapter=self.name, operation=f"{operation} {unit}")

    def enable(self, unit: str, now: bool = False) -> Receipt:
        receipt = self._result("enable", unit)
        if receipt.ok:
            self.enabled.add(unit)
            self.disabled.discard(unit)
            if now:
                self.active.add(unit)
        return receipt

    def disable(self, unit: str, now: bool = False) -> Receipt:
        receipt = self._result("disable", unit)
        if receipt.ok:
            self.enabled.discard(unit)
            self.disabled.add(unit)
            if now:
                self.active.discard(unit)
        return receipt

    def restart(self, unit: str) -> Receipt:
        receipt = self._result("restart", unit)
        if receipt.ok:
            self.restarts.append(unit)
            self.active.add(unit)
        return receipt

    def is_active(self, unit: str) -> bool:
        return unit in self.active

    def daemon_reload(self) -> Receipt:
        self.reloads += 1
        return Receipt.success(adapter=self.name, operation="daemon-reload")


class MockFileWriter(FileWriter):
    """In-memory filesystem keyed by POSIX path strings."""

    def __init__(self, files: Mapping[str, str] | None = None):
        self.files: dict[str, str] = dict(files or {})
        self.modes: dict[str, int] = {}
        self.dirs: set[str] = set()
        self.writes: list[str] = []
        self._failing: set[str] = set()

    @property
    def name(self) -> str:
        return "mock-filesystem"

    @staticmethod
    def _key(path) -> str:
        return str(PurePosixPath(path))

    def set_failure(self, *paths: str) -> None:
        self._failing.update(self._key(p) for p in paths)

    def _fail(self, operation: str, key: str) -> Receipt:
        return Receipt.failure(
            adapter=self.name, operation=f"{operation} {key}", error=f"Permission denied: {key}"
        )

    def write(self, path, content: str, mode: int | None = None) -> Receipt:
        key = self._key(path)
        if key in self._failing:
            return self._fail("write", key)
        changed = self.files.get(key) != content
        if changed:
            self.files[key] = content
            self.writes.append(key)
        if mode is not None:
            self.modes[key] = mode
        return Receipt.success(
            adapter=self.name,
            operation=f"write {key}",
            output="unchanged" if not changed else "",
            metadata={"path": key, "changed": changed},
        )

    def append_line(self, path, line: str) -> Receipt:
        key = self._key(path)
        if key in self._failing:
            return self._fail("append", key)
        existing = self.files.get(key, "")
        if line in existing.splitlines():
            return Receipt.success(
                adapter=self.name, operation=f"append {key}", output="unchanged",
                metadata={"path": key, "changed": False},
            )
        prefix = "" if not existing or existing.endswith("\n") else "\n"
        self.files[key] = f"{existing}{prefix}{line}\n"
        self.writes.append(key)
        return Receipt.success(
            adapter=self.name, operation=f"append {key}", metadata={"path": key, "changed": True}
        )

    def mkdir(self, path, mode: int | None = None) -> Receipt:
        key = self._key(path)
        if key in self._failing:
            return self._fail("mkdir", key)
        self.dirs.add(key)
        return Receipt.success(adapter=self.name, operation=f"mkdir {key}")

    def exists(self, path) -> bool:
        key = self._key(path)
        return key in self.files or self.is_dir(key)

    def is_dir(self, path) -> bool:
        key = self._key(path)
        if key in self.dirs:
            return True
        prefix = key.rstrip("/") + "/"
        return any(k.startswith(prefix) for k in (*self.files, *self.dirs))

    def read(self, path) -> str | None:
        return self.files.get(self._key(path))


class MockDownloader(Downloader):
    def __init__(self, texts: Mapping[str, str] | None = None):
        self.texts: dict[str, str] = dict(texts or {})
        self.fetched: list[tuple[str, str]] = []
        self._failing: set[str] = set()

    @property
    def name(self) -> str:
        return "mock-http"

    def set_failure(self, *urls: str) -> None:
        self._failing.update(urls)

    def fetch(self, url: str, dest) -> Receipt:
        if url in self._failing:
            return Receipt.failure(adapter=self.name, operation=f"fetch {url}", error="Download failed")
        self.fetched.append((url, str(dest)))
        return Receipt.success(adapter=self.name, operation=f"fetch {url}", output=str(dest))

    def fetch_text(self, url: str) -> Receipt:
        if url in self._failing or url not in self.texts:
            return Receipt.failure(adapter=self.name, operation=f"fetch {url}", error="HTTP Error 404")
        return Receipt.success(adapter=self.name, operation=f"fetch {url}", output=self.texts[url])


class MockRebooter(Rebooter):
    def __init__(self):
        self.reboots = 0

    @property
    def name(self) -> str:
        return "mock-reboot"

    def reboot(self) -> Receipt:
        self.reboots += 1
        return Receipt.success(adapter=self.name, operation="reboot", output="[mock] reboot")
