"""
Remote configuration pull.

The endpoint answers {"data": [{"key": "SPREAD_PERCENTAGE", "value": "0.3"}, ...]}.
Recognised keys are converted into a new Settings snapshot; the caller
decides how to deliver it (the orchestrator broadcasts via update_config).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from baristabot.config.config import ConfigError, Settings
from baristabot.core.scheduling import PeriodicTask

log = logging.getLogger("baristabot")

# remote key -> (settings field, converter)
REMOTE_KEYS: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "SPREAD_PERCENTAGE": ("spread_pct", float),
    "ORDER_SIZE": ("order_size", str),
    "MAX_ORDERS_PER_SIDE": ("max_orders_per_side", int),
    "PRICE_STEP_PERCENTAGE": ("price_step_pct", float),
    "REFRESH_INTERVAL": ("refresh_interval_ms", int),
    "PRICE_DEVIATION_THRESHOLD_BPS": ("price_deviation_threshold_bps", int),
}


def overrides_from_payload(payload: Any) -> Dict[str, Any]:
    items = payload.get("data", []) if isinstance(payload, dict) else []
    remote = {
        str(item.get("key")): str(item.get("value"))
        for item in items
        if isinstance(item, dict) and item.get("key") is not None and item.get("value") not in (None, "")
    }
    overrides: Dict[str, Any] = {}
    for key, (field_name, convert) in REMOTE_KEYS.items():
        if key not in remote:
            continue
        try:
            overrides[field_name] = convert(remote[key])
        except ValueError as exc:
            raise ConfigError(f"remote {key}={remote[key]!r} is not a valid {convert.__name__}") from exc
    return overrides


async def fetch_remote_settings(
    current: Settings,
    client: httpx.AsyncClient,
) -> Optional[Settings]:
    """
    Pull remote values and return a new snapshot, or None when nothing changed
    or the endpoint is unavailable.
    """
    if not current.cloud_update_url or not current.cloud_login_token:
        return None
    resp = await client.post(
        current.cloud_update_url,
        headers={"Authorization": f"Bearer {current.cloud_login_token}"},
        json={},
    )
    if resp.status_code >= 400:
        log.warning(json.dumps({"event": "cloud_update_http_error", "status": resp.status_code}))
        return None

    changed: Dict[str, Any] = {}
    try:
        # a non-JSON body raises ValueError
        overrides = overrides_from_payload(resp.json())
        changed = {k: v for k, v in overrides.items() if getattr(current, k) != v}
        if not changed:
            return None
        updated = current.with_overrides(**changed)
    except (ConfigError, ValueError) as exc:
        log.error(json.dumps({"event": "cloud_update_rejected", "err": str(exc), "changes": changed}))
        return None
    log.info(json.dumps({"event": "cloud_update_applied", "changes": changed}))
    return updated


class CloudConfigPoller:
    """Polls the remote endpoint and hands every new snapshot to on_update."""

    def __init__(
        self,
        settings: Settings,
        on_update: Callable[[Settings], Awaitable[None]],
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings
        self._on_update = on_update
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.http_timeout)
        self._timer = PeriodicTask("cloud-config", self.poll_once, settings.cloud_poll_interval_sec)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.cloud_update_url and self.settings.cloud_login_token)

    async def poll_once(self) -> Optional[Settings]:
        try:
            updated = await fetch_remote_settings(self.settings, self._client)
        except httpx.HTTPError as exc:
            log.warning(json.dumps({"event": "cloud_update_error", "err": str(exc)}))
            return None
        if updated is None:
            return None
        self.settings = updated
        await self._on_update(updated)
        return updated

    def start(self) -> None:
        if self.enabled:
            self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()
        if self._owns_client:
            await self._client.aclose()
