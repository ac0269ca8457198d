"""
Development unit — shell, prompt, git identity and terminal for the
primary user.
"""

from __future__ import annotations

from autorpi.core.engine.unit import Unit, UnitContext
from autorpi.core.models.result import UnitResult
from autorpi.core.units.common import chown, require_username, user_home

BASE_TOOLS = ["fish", "git", "curl", "wget", "vim"]

STARSHIP_INSTALL = "curl -fsSL https://starship.rs/install.sh | sh -s -- -y"

FISH_CONFIG = """\
# Fish shell configuration
set -gx EDITOR lite-xl
set -gx BROWSER firefox
alias ls='ls --color=auto'
alias ll='ls -la'
alias la='ls -A'
alias grep='grep --color=auto'
alias dps='docker ps'
alias dcu='docker compose up'
alias dcd='docker compose down'
alias pps='podman ps'
if test -d ~/.local/bin
    set -gx PATH ~/.local/bin $PATH
end
"""

ALACRITTY_CONFIG = """\
window:
  decorations: none
  opacity: 0.95
  startup_mode: Windowed
  dimensions:
    columns: 120
    lines: 30
font:
  size: 12.0
  normal:
    family: "Monospace"
    style: "Regular"
colors:
  primary:
    background: '#1e1e2e'
    foreground: '#cdd6f4'
cursor:
  style:
    shape: Block
key_bindings:
  - { key: N, mods: Control|Shift, action: SpawnNewInstance }
"""

GIT_ALIASES = {"co": "checkout", "br": "branch", "ci": "commit", "st": "status"}


class DevelopmentUnit(Unit):
    name = "development"
    description = "development environment"

    def apply(self, ctx: UnitContext) -> UnitResult:
        username = require_username(ctx)
        alacritty = self._install_tools(ctx)
        self._configure_fish(ctx, username)
        self._configure_starship(ctx, username)
        git = self._configure_git(ctx, username)
        self._configure_alacritty(ctx, username)
        return ctx.success(
            f"development tools installed (alacritty={str(alacritty).lower()})",
            details={"git": "configured" if git else "skipped"},
        )

    def _install_tools(self, ctx: UnitContext) -> bool:
        packages = list(BASE_TOOLS)
        alacritty = False
        if ctx.config.get_bool("install_alacritty"):
            if "desktop" in ctx.config.get_list("disable_modules"):
                ctx.warn("install_alacritty requested but desktop module is disabled; skipping")
            else:
                packages.append("alacritty")
                alacritty = True
        ctx.require(ctx.caps.packages.install(packages), "install development tools")
        return alacritty

    def _configure_fish(self, ctx: UnitContext, username: str) -> None:
        home = user_home(username)
        if ctx.caps.runner.which("fish"):
            ctx.attempt(ctx.caps.runner.run(["chsh", "-s", "/usr/bin/fish", username]), "set fish as login shell")
        ctx.require(
            ctx.caps.files.write(f"{home}/.config/fish/config.fish", FISH_CONFIG),
            "write fish config",
        )
        chown(ctx, f"{home}/.config", username)

    def _configure_starship(self, ctx: UnitContext, username: str) -> None:
        runner = ctx.caps.runner
        if not runner.which("starship"):
            if not ctx.attempt(runner.shell(STARSHIP_INSTALL), "install Starship"):
                return

        home = user_home(username)
        files = ctx.caps.files
        ctx.attempt(
            files.append_line(f"{home}/.config/fish/config.fish", "starship init fish | source"),
            "enable Starship for fish",
        )
        ctx.attempt(
            files.append_line(f"{home}/.bashrc", 'eval "$(starship init bash)"'),
            "enable Starship for bash",
        )
        chown(ctx, f"{home}/.bashrc", username)

    def _configure_git(self, ctx: UnitContext, username: str) -> bool:
        name = ctx.config.get("git_name").strip()
        email = ctx.config.get("git_email").strip()
        if not (name and email):
            ctx.warn("Git name/email not configured, skipping Git setup")
            return False

        settings = {
            "user.name": name,
            "user.email": email,
            "init.defaultBranch": ctx.config.get("git_default_branch").strip() or "main",
        }
        settings.update({f"alias.{k}": v for k, v in GIT_ALIASES.items()})

        runner = ctx.caps.runner
        for key, value in settings.items():
            ctx.attempt(
                runner.run(["sudo", "-u", username, "git", "config", "--global", key, value]),
                f"git config {key}",
            )
        return True

    def _configure_alacritty(self, ctx: UnitContext, username: str) -> None:
        home = user_home(username)
        ctx.attempt(
            ctx.caps.files.write(f"{home}/.config/alacritty/alacritty.yml", ALACRITTY_CONFIG),
            "write alacritty config",
        )
