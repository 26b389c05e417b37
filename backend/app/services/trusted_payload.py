"""Gate for executable or dynamic dashboard content.

Dashboards can embed script, style, external resources and raw HTML widgets.
Under the ``safe`` execution mode none of that may be introduced or altered,
but dashboards that already carry it can still be edited in unrelated places.
The decision compares a canonical signature of the trust-relevant fields of
the next record against the stored one.
"""

from __future__ import annotations

import json
import logging

from app.core.errors import ForbiddenError
from app.core.metrics import trust_gate_rejections_total

logger = logging.getLogger(__name__)

TRUSTED_SETTINGS_TEXT_KEYS = ("script", "style")
HTML_WIDGET_TYPE = "html"
TRUSTED_HTML_MODE = "trusted_html"
BASE_WIDGET_TYPE = "base"

# Top-level payload fields that may be merged onto the stored record
CONTENT_FIELDS = (
    "title",
    "version",
    "image",
    "datasources",
    "columns",
    "panes",
    "width",
    "auth_providers",
    "settings",
)


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _resource_urls(resources) -> list[str]:
    """Resource lists hold plain URLs or ``{"asset"|"url": ..., "label": ...}`` objects."""
    if not isinstance(resources, (list, tuple)):
        return []
    urls: list[str] = []
    for item in resources:
        if isinstance(item, dict):
            url = _text(item.get("asset") or item.get("url") or item.get("src"))
        else:
            url = _text(item)
        if url:
            urls.append(url)
    return sorted(urls)


def _settings_signature(settings) -> dict:
    if not isinstance(settings, dict):
        return {}
    signature: dict = {}
    for key in TRUSTED_SETTINGS_TEXT_KEYS:
        value = _text(settings.get(key))
        if value:
            signature[key] = value
    resources = _resource_urls(settings.get("resources"))
    if resources:
        signature["resources"] = resources
    return signature


def _widget_signature(widget) -> dict | None:
    if not isinstance(widget, dict):
        return None
    widget_type = _text(widget.get("type")).lower()
    settings = widget.get("settings") if isinstance(widget.get("settings"), dict) else {}

    if widget_type == HTML_WIDGET_TYPE:
        if _text(settings.get("mode")).lower() != TRUSTED_HTML_MODE:
            return None
        return {
            "type": HTML_WIDGET_TYPE,
            "mode": TRUSTED_HTML_MODE,
            "htmlPath": _text(settings.get("htmlPath")),
        }

    if widget_type == BASE_WIDGET_TYPE:
        script = _text(settings.get("script"))
        resources = _resource_urls(settings.get("resources"))
        if not script and not resources:
            return None
        return {
            "type": BASE_WIDGET_TYPE,
            "script": script,
            "resources": resources,
            "html": _text(settings.get("html")),
            "style": _text(settings.get("style")),
        }
    return None


def _trusted_widgets(panes) -> list[dict]:
    found: list[dict] = []
    if not isinstance(panes, (list, tuple)):
        return found
    for pane in panes:
        widgets = pane.get("widgets") if isinstance(pane, dict) else None
        if not isinstance(widgets, (list, tuple)):
            continue
        for widget in widgets:
            signature = _widget_signature(widget)
            if signature is not None:
                found.append(signature)
    return found


def _canonical(value) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def trust_signature(record: dict | None) -> str:
    """Deterministic signature of trusted content; empty string when there is none.

    Widgets are sorted so moving a trusted widget between panes does not count
    as a change.
    """
    if not record:
        return ""
    settings = _settings_signature(record.get("settings"))
    widgets = sorted(_trusted_widgets(record.get("panes")), key=_canonical)
    if not settings and not widgets:
        return ""
    return _canonical({"settings": settings, "widgets": widgets})


def merge_content(existing: dict | None, incoming: dict) -> dict:
    """Overlay a partial payload on the stored content (top-level replace)."""
    merged = dict(existing or {})
    for key in CONTENT_FIELDS:
        if key in incoming:
            merged[key] = incoming[key]
    return merged


def is_payload_allowed(incoming_signature: str, existing_signature: str, execution_mode: str) -> bool:
    if not incoming_signature:
        return True
    if execution_mode == "trusted":
        return True
    return incoming_signature == existing_signature


def ensure_payload_trusted(
    incoming: dict,
    existing: dict | None,
    execution_mode: str,
) -> None:
    """Raise FORBIDDEN when ``incoming`` introduces or alters trusted content in safe mode."""
    existing_signature = trust_signature(existing)
    incoming_signature = trust_signature(merge_content(existing, incoming))
    if is_payload_allowed(incoming_signature, existing_signature, execution_mode):
        return
    trust_gate_rejections_total.inc()
    logger.info("Rejected dashboard payload carrying untrusted script/HTML in safe mode")
    raise ForbiddenError(
        "Scripts, styles, external resources and trusted HTML widgets can only be "
        "added or changed when the deployment runs in trusted execution mode"
    )
