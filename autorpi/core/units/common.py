"""Helpers shared by several units."""

from __future__ import annotations

from autorpi.core.engine.unit import UnitContext, UnitFailure


def require_username(ctx: UnitContext) -> str:
    """The configured primary user, or UnitFailure when unset."""
    username = ctx.config.get("username").strip()
    if not username:
        raise UnitFailure("No username configured")
    return username


def user_home(username: str) -> str:
    return f"/home/{username}"


def chown(ctx: UnitContext, path: str, owner: str) -> bool:
    """Recursively hand ``path`` to ``owner``; a failure is only a warning."""
    receipt = ctx.caps.runner.run(["chown", "-R", f"{owner}:{owner}", path])
    return ctx.attempt(receipt, f"chown {path}")
