"""Cloudflare DNS provider backed by the ``cloudflare`` SDK (>=3.0,<4)."""
from __future__ import annotations

import logging
from typing import Any, Optional

import cloudflare

from dns_providers.base import DnsProvider, TxtRecord
from renewal.errors import ProviderAPIError

logger = logging.getLogger(__name__)


class CloudflareDnsProvider(DnsProvider):
    """
    TXT record CRUD for one Cloudflare zone.

    Authenticates with an API token, or with the account email plus global
    API key when no token is configured.  When *zone_id* is empty the zone is
    discovered from the record name on first use.
    """

    name = "cloudflare"

    def __init__(
        self,
        zone_id: str = "",
        api_token: str = "",
        api_email: str = "",
        api_key: str = "",
        client: Optional[Any] = None,
    ) -> None:
        if client is None:
            if api_token:
                client = cloudflare.Cloudflare(api_token=api_token)
            elif api_email and api_key:
                client = cloudflare.Cloudflare(api_email=api_email, api_key=api_key)
            else:
                raise ValueError(
                    "Cloudflare credentials missing: set CLOUDFLARE_API_TOKEN "
                    "or CLOUDFLARE_API_EMAIL + CLOUDFLARE_API_KEY"
                )
        self._client = client
        self._zone_id = zone_id

    def _resolve_zone_id(self, record_name: str) -> str:
        """Return the configured zone ID, or discover it from the record name."""
        if self._zone_id:
            return self._zone_id

        # Walk from most-specific to least-specific label group
        parts = record_name.split(".")
        for i in range(1, len(parts) - 1):
            candidate = ".".join(parts[i:])
            try:
                zones = list(self._client.zones.list(name=candidate))
            except cloudflare.APIError as exc:
                raise ProviderAPIError(self.name, "zone lookup", str(exc)) from exc
            if zones:
                self._zone_id = zones[0].id
                logger.info("Discovered Cloudflare zone %s for %s", self._zone_id, candidate)
                return self._zone_id

        raise ProviderAPIError(self.name, "zone lookup", f"no zone found for {record_name}")

    def list_txt_records(self, name: str) -> list[TxtRecord]:
        zone_id = self._resolve_zone_id(name)
        try:
            records = list(self._client.dns.records.list(zone_id=zone_id, name=name, type="TXT"))
        except cloudflare.APIError as exc:
            raise ProviderAPIError(self.name, "list records", str(exc)) from exc
        return [
            TxtRecord(id=r.id, name=getattr(r, "name", name), content=getattr(r, "content", "") or "")
            for r in records
        ]

    def delete_record(self, record_id: str) -> None:
        if not self._zone_id:
            raise ProviderAPIError(self.name, "delete record", "zone id unknown; list records first")
        try:
            self._client.dns.records.delete(record_id, zone_id=self._zone_id)
        except cloudflare.APIError as exc:
            raise ProviderAPIError(self.name, "delete record", str(exc)) from exc
        logger.debug("Deleted Cloudflare record %s", record_id)

    def create_txt_record(
        self,
        name: str,
        content: str,
        ttl: int = 120,
        proxied: bool = False,
        comment: str = "",
    ) -> TxtRecord:
        zone_id = self._resolve_zone_id(name)
        try:
            record = self._client.dns.records.create(
                zone_id=zone_id,
                type="TXT",
                name=name,
                content=content,
                ttl=ttl,
                proxied=proxied,
                comment=comment,
            )
        except cloudflare.APIError as exc:
            raise ProviderAPIError(self.name, "create record", str(exc)) from exc
        logger.info("Created Cloudflare TXT record %s", name)
        return TxtRecord(id=getattr(record, "id", ""), name=name, content=content)
