"""Static Manifest V3 checks over a parsed manifest.json."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any

_VERSION_RE = re.compile(r"^\d+(\.\d+){0,3}$")


@dataclass(frozen=True, slots=True)
class ManifestIssue:
    level: str  # error | warning | info
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _is_host_permission(perm: Any) -> bool:
    return isinstance(perm, str) and ("://" in perm or perm == "<all_urls>")


def validate_manifest(manifest: dict[str, Any]) -> list[ManifestIssue]:
    issues: list[ManifestIssue] = []

    def add(level: str, field: str, message: str) -> None:
        issues.append(ManifestIssue(level, field, message))

    mv = manifest.get("manifest_version")
    if not mv:
        add("error", "manifest_version", "Missing required field")
    elif mv != 3:
        add("error", "manifest_version", f"Expected 3, got {mv}. MV2 is deprecated.")

    if not manifest.get("name"):
        add("error", "name", "Missing required field")

    version = manifest.get("version")
    if not version:
        add("error", "version", "Missing required field")
    elif not isinstance(version, str) or not _VERSION_RE.match(version):
        add("error", "version", "Must be 1-4 dot-separated integers")

    background = manifest.get("background")
    if isinstance(background, dict):
        if background.get("scripts"):
            add("error", "background.scripts", "MV3 uses service_worker, not background scripts")
        if background.get("page"):
            add("error", "background.page", "MV3 uses service_worker, not background page")
        if "persistent" in background:
            add("warning", "background.persistent", "persistent flag is ignored in MV3")

    if isinstance(manifest.get("content_security_policy"), str):
        add("error", "content_security_policy", 'MV3 requires object format: { extension_pages: "..." }')

    resources = manifest.get("web_accessible_resources")
    if isinstance(resources, list):
        for i, entry in enumerate(resources):
            if isinstance(entry, str):
                add("error", f"web_accessible_resources[{i}]", "MV3 requires object format with resources and matches")
                break

    permissions = manifest.get("permissions")
    if isinstance(permissions, list) and permissions:
        if "webRequestBlocking" in permissions:
            add("error", "permissions", "webRequestBlocking not available in MV3. Use declarativeNetRequest.")
        hosts = [p for p in permissions if _is_host_permission(p)]
        if hosts:
            add("warning", "permissions", f"Host permissions should be in host_permissions: {', '.join(hosts)}")

    if manifest.get("browser_action"):
        add("error", "browser_action", 'MV3 uses "action" instead of "browser_action"')
    if manifest.get("page_action"):
        add("error", "page_action", 'MV3 uses "action" instead of "page_action"')

    if not manifest.get("description"):
        add("info", "description", "Recommended for Chrome Web Store listing")
    if not manifest.get("icons"):
        add("warning", "icons", "No icons defined. Recommended: 16, 48, 128")

    return issues


def summarize(issues: list[ManifestIssue]) -> dict[str, Any]:
    counts = {level: sum(1 for i in issues if i.level == level) for level in ("error", "warning", "info")}
    return {
        "valid": counts["error"] == 0,
        "summary": f"{counts['error']} errors, {counts['warning']} warnings, {counts['info']} info",
        "issues": [i.to_dict() for i in issues],
    }


__all__ = ["ManifestIssue", "summarize", "validate_manifest"]
