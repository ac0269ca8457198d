"""
3D-printing unit — container-backed printer services and KIAUH.

Each requested service is resolved against a fixed registry and
tracked with its own completion marker (``3dprinter_<svc>_configured``),
so a partially successful list is retried only for the members that
did not finish. ``3dprinter_force_reconfigure`` ignores the markers.

Container services need podman or docker; with neither available they
are skipped with a warning and retried on a later run. ``fluidd`` only
clones/updates the KIAUH helper repository.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from dataclasses import dataclass
from enum import Enum

from autorpi.core.engine.unit import Unit, UnitContext, UnitFailure
from autorpi.core.models.config import Config
from autorpi.core.models.result import UnitResult
from autorpi.core.persistence.markers import marker_key
from autorpi.core.units.containers import detect_runtime

logger = logging.getLogger(__name__)

DEFAULT_KIAUH_REPO = "https://github.com/dw-0/kiauh"
DEFAULT_KIAUH_PATH = "/opt/kiauh"

WRAPPER_UNIT = """\
[Unit]
Description=3DPrinter service: {name}
After=network.target

[Service]
Restart=always
EnvironmentFile=-{env_file}
ExecStart=/bin/sh -c 'exec /usr/bin/{runtime} run --name {name} ${{RUN_ARGS}} ${{IMAGE}}'
ExecStop=/bin/sh -c '/usr/bin/{runtime} stop -t 10 {name} || true'
ExecStopPost=/bin/sh -c '/usr/bin/{runtime} rm -f {name} || true'
Type=simple

[Install]
WantedBy=multi-user.target
"""


class PrinterService(str, Enum):
    OCTOPRINT = "octoprint"
    OCTOKLIPPER = "octoklipper"
    ORCASLICER = "orcaslicer"
    MANYFOLD = "manyfold"
    FLUIDD = "fluidd"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, token: str) -> PrinterService:
        try:
            service = cls(token.strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return service


KNOWN_SERVICES = tuple(s.value for s in PrinterService if s is not PrinterService.UNKNOWN)


@dataclass(frozen=True)
class ContainerSpec:
    """How a container-backed service is run."""

    run_args: str

    def image(self, config: Config, service: PrinterService) -> str:
        default = f"{service.value}/{service.value}:latest"
        return config.get(f"3dprinter_{service.value}_image").strip() or default


CONTAINER_SERVICES: dict[PrinterService, ContainerSpec] = {
    PrinterService.OCTOPRINT: ContainerSpec("-p 5000:80 -v /srv/octoprint:/config"),
    PrinterService.OCTOKLIPPER: ContainerSpec(
        "-p 7125:7125 -v /srv/octoklipper:/config --device=/dev/ttyUSB0"
    ),
    PrinterService.ORCASLICER: ContainerSpec("-p 8080:80 -v /srv/orcaslicer:/data"),
    PrinterService.MANYFOLD: ContainerSpec("-p 8000:8000 -v /srv/manyfold:/data"),
}


def service_unit(name: str) -> str:
    return f"3dprinter-{name}.service"


class PrinterUnit(Unit):
    name = "3dprinter"
    description = "3D printer services"
    tracks_own_state = True

    def enabled(self, config: Config) -> bool:
        return bool(config.get_list("3dprinter_services"))

    def disabled_reason(self, config: Config) -> str:
        return "No 3D printer services requested"

    def apply(self, ctx: UnitContext) -> UnitResult:
        requested = ctx.config.get_list("3dprinter_services")
        force = ctx.config.get_bool("3dprinter_force_reconfigure")

        runtime = None
        if any(PrinterService.parse(s) in CONTAINER_SERVICES for s in requested):
            runtime = detect_runtime(ctx.caps.runner, ctx.config)
            if runtime is None:
                ctx.warn("No container runtime available; container-backed services will be skipped")
            else:
                logger.info("Using container runtime: %s", runtime)

        details: dict[str, str] = {}
        for token in requested:
            details[token] = self._configure_service(ctx, token, runtime, force)

        failed = [name for name, outcome in details.items() if outcome.startswith("failed")]
        if failed:
            return ctx.failure(f"3D printer service(s) failed: {', '.join(failed)}", details=details)
        configured = [name for name, outcome in details.items() if outcome == "configured"]
        return ctx.success(
            f"configured: {', '.join(configured)}" if configured else "no services changed",
            details=details,
        )

    def _configure_service(self, ctx: UnitContext, token: str, runtime: str | None, force: bool) -> str:
        service = PrinterService.parse(token)
        if service is PrinterService.UNKNOWN:
            ctx.warn(f"Unknown 3dprinter service: {token}")
            return "unknown"

        key = marker_key(self.name, service.value)
        if ctx.state.is_done(key, force=force):
            logger.info(
                "Service '%s' already configured - skipping (set 3dprinter_force_reconfigure=true to override)",
                service.value,
            )
            return "already configured"

        if service in CONTAINER_SERVICES and runtime is None:
            ctx.warn(f"Skipping '{service.value}' - container runtime not available")
            return "skipped"

        try:
            if service is PrinterService.FLUIDD:
                setup_kiauh(ctx)
            else:
                deploy_container(ctx, service, runtime)
        except UnitFailure as e:
            logger.error("Failed to configure %s: %s", service.value, e)
            return f"failed: {e}"

        try:
            ctx.state.mark_done(key)
        except OSError as e:
            ctx.warn(f"Could not record completion of {service.value}: {e}")
        return "configured"


def deploy_container(ctx: UnitContext, service: PrinterService, runtime: str) -> None:
    """Pull the image and install an enabled systemd unit for it."""
    spec = CONTAINER_SERVICES[service]
    name = service.value
    image = spec.image(ctx.config, service)
    runner = ctx.caps.runner
    files = ctx.caps.files

    logger.info("Pulling %s image: %s", name, image)
    ctx.attempt(runner.run([runtime, "pull", image]), f"pull {image}")

    env_file = f"/etc/default/3dprinter-{name}"
    ctx.require(
        files.write(env_file, f'IMAGE="{image}"\nRUN_ARGS="{spec.run_args}"\n', mode=0o644),
        f"write {env_file}",
    )

    unit = service_unit(name)
    unit_file = f"/etc/systemd/system/{unit}"
    # Best effort: the unit may not exist yet
    ctx.caps.services.disable(unit, now=True)

    generated = None
    runner.run([runtime, "rm", "-f", name])
    if runtime == "podman":
        ctx.require(
            runner.run(["podman", "create", "--name", name, *shlex.split(spec.run_args), image]),
            f"create podman container {name}",
        )
        receipt = runner.run(["podman", "generate", "systemd", "--new", "--name", name])
        if receipt.ok and receipt.output.strip():
            generated = receipt.output
        else:
            ctx.warn("podman generate systemd failed; falling back to wrapper unit")

    content = generated or WRAPPER_UNIT.format(name=name, env_file=env_file, runtime=runtime)
    ctx.require(files.write(unit_file, content, mode=0o644), f"write {unit_file}")
    ctx.require(ctx.caps.services.daemon_reload(), "systemctl daemon-reload")
    ctx.attempt(ctx.caps.services.enable(unit, now=True), f"start {unit}")


def setup_kiauh(ctx: UnitContext) -> None:
    """Clone KIAUH when absent, fast-forward it when present."""
    repo = ctx.config.get("3dprinter_kiauh_repo").strip() or DEFAULT_KIAUH_REPO
    dest = ctx.config.get("3dprinter_kiauh_path").strip() or DEFAULT_KIAUH_PATH
    runner = ctx.caps.runner
    files = ctx.caps.files

    logger.info("Preparing KIAUH for Fluidd at: %s", dest)
    if not runner.which("git"):
        ctx.attempt(ctx.caps.packages.update(), "refresh package index")
        ctx.require(ctx.caps.packages.install(["git", "ca-certificates"]), "install git")

    if files.exists(dest) and not files.is_dir(f"{dest}/.git"):
        raise UnitFailure(f"Destination exists but is not a git repo: {dest}")

    if not files.exists(dest):
        ctx.require(files.mkdir(posixpath.dirname(dest) or "/"), f"create parent of {dest}")
        ctx.require(runner.run(["git", "clone", "--depth=1", repo, dest]), "clone KIAUH")
        ctx.attempt(runner.run(["chmod", "755", dest]), f"chmod {dest}")
        return

    logger.info("KIAUH already present; updating")
    if not ctx.attempt(runner.run(["git", "-C", dest, "fetch", "--quiet", "--all", "--prune"]), "fetch KIAUH"):
        return
    ctx.attempt(runner.run(["git", "-C", dest, "pull", "--ff-only", "--quiet"]), "update KIAUH")
