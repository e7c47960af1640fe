"""Helpers for keeping personal data out of log lines."""

from __future__ import annotations


def mask_email(value: str | None) -> str | None:
    if not value or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    if not local:
        return "***@" + domain
    return f"{local[0]}***@{domain}"


def mask_ip(value: str | None) -> str | None:
    if not value:
        return value
    if ":" in value:
        head, _, _ = value.rpartition(":")
        return f"{head}:*"
    parts = value.split(".")
    if len(parts) != 4:
        return "***"
    return ".".join(parts[:3] + ["*"])


__all__ = ["mask_email", "mask_ip"]
