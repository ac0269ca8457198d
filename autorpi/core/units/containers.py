"""
Container unit — podman and/or docker, plus pre-pulled images.

The ``container_runtime`` token is parsed once, here, into a
ContainerRuntime. Unrecognised tokens become UNKNOWN and are resolved
centrally by ``resolve_runtime`` (warning, then podman).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from autorpi.adapters.base import ProcessRunner
from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult

logger = logging.getLogger(__name__)

DEFAULT_RUNTIME = "podman"


class ContainerRuntime(str, Enum):
    NONE = "none"
    PODMAN = "podman"
    DOCKER = "docker"
    BOTH = "both"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, token: str) -> ContainerRuntime:
        """Case-insensitive; ``""`` and ``"0"`` mean none."""
        value = token.strip().lower()
        if value in ("", "0", "none"):
            return cls.NONE
        try:
            runtime = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return cls.UNKNOWN if runtime is cls.UNKNOWN else runtime


def resolve_runtime(config: Config, warn: Callable[[str], None] | None = None) -> ContainerRuntime:
    """The effective runtime for ``config``; never UNKNOWN.

    An absent key means podman. An unrecognised token is reported
    through ``warn`` (or the module logger) and falls back to podman.
    """
    token = config.get("container_runtime", DEFAULT_RUNTIME)
    runtime = ContainerRuntime.parse(token)
    if runtime is ContainerRuntime.UNKNOWN:
        message = f"Unknown container_runtime='{token.strip()}' - defaulting to podman"
        if warn is not None:
            warn(message)
        else:
            logger.warning(message)
        return ContainerRuntime.PODMAN
    return runtime


def detect_runtime(runner: ProcessRunner, config: Config, prefer: str = "podman") -> str | None:
    """The installed runtime command to use, or None.

    A configured ``none`` disables detection. Otherwise ``prefer`` is
    tried first (``docker`` when the config asks for docker only).
    """
    runtime = ContainerRuntime.parse(config.get("container_runtime", DEFAULT_RUNTIME))
    if runtime is ContainerRuntime.NONE:
        return None
    if runtime is ContainerRuntime.DOCKER:
        prefer = "docker"
    order = ["docker", "podman"] if prefer == "docker" else ["podman", "docker"]
    for program in order:
        if runner.which(program):
            return program
    return None


def install_podman(ctx: UnitContext) -> None:
    if ctx.caps.runner.which("podman"):
        logger.info("Podman already installed")
        return
    ctx.require(
        ctx.caps.packages.install(["podman", "fuse-overlayfs", "slirp4netns"]),
        "install podman",
    )


def install_docker(ctx: UnitContext) -> None:
    if ctx.caps.runner.which("docker"):
        logger.info("Docker already installed")
        return
    ctx.require(ctx.caps.packages.install(["docker.io"]), "install docker.io")
    ctx.attempt(ctx.caps.services.enable("docker", now=True), "enable docker")


_INSTALLERS: dict[ContainerRuntime, tuple[Callable[[UnitContext], None], ...]] = {
    ContainerRuntime.PODMAN: (install_podman,),
    ContainerRuntime.DOCKER: (install_docker,),
    ContainerRuntime.BOTH: (install_podman, install_docker),
}


class ContainersUnit(Unit):
    name = "containers"
    description = "container environment"

    def enabled(self, config: Config) -> bool:
        # An absent token leaves containers off; only an explicit choice installs a runtime.
        return ContainerRuntime.parse(config.get("container_runtime", "none")) is not ContainerRuntime.NONE

    def disabled_reason(self, config: Config) -> str:
        return "Container runtimes disabled by configuration"

    def apply(self, ctx: UnitContext) -> UnitResult:
        runtime = resolve_runtime(ctx.config, warn=ctx.warn)
        for install in _INSTALLERS[runtime]:
            install(ctx)

        pulled = self._pre_pull(ctx)
        details = {"runtime": runtime.value}
        if pulled:
            details["pulled"] = ",".join(pulled)
        return ctx.success(f"container runtime: {runtime.value}", details=details)

    def _pre_pull(self, ctx: UnitContext) -> list[str]:
        images = ctx.config.get_list("extra_containers")
        if not images:
            return []

        command = detect_runtime(ctx.caps.runner, ctx.config)
        if command is None:
            ctx.warn("No container runtime available for pre-pulling extra containers")
            return []

        pulled = []
        for image in images:
            logger.info("Pre-pulling image with %s: %s", command, image)
            if ctx.attempt(ctx.caps.runner.run([command, "pull", image]), f"pre-pull {image}"):
                pulled.append(image)
        return pulled
