"""
Risk Audit Logger

Fire-and-forget event sink that inserts structured audit entries into the
Supabase `audit_logs` table for every RiskEvent emitted by the engine.

Schema:
    audit_logs (
        event_id TEXT PRIMARY KEY,
        payload  JSONB,
        created_at TIMESTAMPTZ DEFAULT now()
    )
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import geoip2.database
from supabase import create_client, Client

if TYPE_CHECKING:
    from lockout.events import RiskEvent

logger = logging.getLogger(__name__)

_PRIVATE_PREFIXES = (
    "10.", "172.16.", "172.17.", "172.18.", "172.19.",
    "172.20.", "172.21.", "172.22.", "172.23.",
    "172.24.", "172.25.", "172.26.", "172.27.",
    "172.28.", "172.29.", "172.30.", "172.31.",
    "192.168.", "127.", "0.", "::1", "fe80:",
)


class AuditLogger:
    """
    Builds and inserts structured audit log payloads into Supabase.

    Usable directly as an engine event sink: ``AnomalyEngine(event_sinks=[AuditLogger()])``.
    All writes are best-effort; errors are logged but never raised.
    """

    ENGINE_VERSION = "v1.0.0"
    DEFAULT_GEOIP_PATH = "assets/GeoLite2-City.mmdb"

    def __init__(
        self,
        client: Optional[Client] = None,
        geoip_path: Optional[str] = None,
    ) -> None:
        self.geoip = None

        if client is not None:
            self._client: Optional[Client] = client
        else:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_KEY")
            if not url or not key:
                logger.warning("Supabase credentials missing, risk audit logging disabled")
                self._client = None
                return
            self._client = create_client(url, key)

        path = geoip_path or os.getenv("GEOIP_DB_PATH", self.DEFAULT_GEOIP_PATH)
        try:
            self.geoip = geoip2.database.Reader(path)
        except Exception as e:
            logger.warning(f"GeoIP database unavailable for audit logger: {e}")
            self.geoip = None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def __call__(self, event: RiskEvent) -> None:
        self.log(event)

    def log(self, event: RiskEvent) -> None:
        """Build and insert an audit log entry for one risk event."""
        if self._client is None:
            return

        try:
            entry = self._build_entry(event)
            self._client.table("audit_logs").insert({
                "event_id": entry["event_id"],
                "payload": entry,
            }).execute()
            logger.debug(f"Audit log inserted: {entry['event_id']}")
        except Exception as e:
            logger.error(f"Audit log insertion failed: {e}")

    # ------------------------------------------------------------------
    # GeoIP Lookup
    # ------------------------------------------------------------------

    def _resolve_ip(self, ip_address: str) -> Dict[str, Any]:
        """
        Resolve IP address to geo data using GeoLite2.
        Returns { country, city, lat, lng }, all best-effort.
        """
        if self.geoip is None:
            return {"country": "unknown", "city": "unknown", "lat": None, "lng": None}

        if ip_address.startswith(_PRIVATE_PREFIXES):
            return {"country": "private", "city": "private", "lat": None, "lng": None}

        try:
            response = self.geoip.city(ip_address)
            return {
                "country": response.country.iso_code or "unknown",
                "city": response.city.name or "unknown",
                "lat": response.location.latitude,
                "lng": response.location.longitude,
            }
        except Exception as e:
            logger.debug(f"GeoIP lookup failed for {ip_address}: {e}")
            return {"country": "unknown", "city": "unknown", "lat": None, "lng": None}

    # ------------------------------------------------------------------
    # Payload Builder
    # ------------------------------------------------------------------

    def _build_entry(self, event: RiskEvent) -> Dict[str, Any]:
        """Assemble the full audit log payload."""
        event_time = datetime.fromtimestamp(event.timestamp, tz=timezone.utc)
        details = dict(event.details)

        network: Optional[Dict[str, Any]] = None
        source_ip = details.get("source_ip")
        if source_ip:
            network = {
                "ip_address": source_ip,
                "geo_location": self._resolve_ip(source_ip),
            }

        return {
            # Metadata
            "event_id": f"evt_{uuid.uuid4()}",
            "timestamp": event_time.isoformat(),
            "recorded_at": datetime.now(timezone.utc).isoformat(),
            "environment": os.getenv("LOCKOUT_ENV", "production"),

            # Actor
            "actor": {
                "user_id": event.user_id,
                "identity_label": event.identity_label,
            },

            # Network
            "network_context": network,

            # Risk Analysis
            "risk_analysis": {
                "engine_version": self.ENGINE_VERSION,
                "event_type": event.event_type.value,
                "old_score": event.old_score,
                "new_score": event.new_score,
                "cause": event.cause,
                "details": details,
            },
        }
