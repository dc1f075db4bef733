import structlog
from pydantic import ValidationError

from ..models import DnsRecord
from .cloudflare_client import CloudflareAPIError, CloudflareClient

log = structlog.get_logger()

DEFAULT_TTL = 3600


class DnsRecordClient(CloudflareClient):
    """
    CRUD access to the A records of a single Cloudflare zone.

    Every method raises CloudflareAPIError when the call does not succeed;
    nothing is retried here.
    """

    def __init__(self, config):
        super().__init__(config)
        self.zone_id = config["zone_id"]
        self.ttl = config.get("dns_record_ttl", DEFAULT_TTL)

    @property
    def _records_path(self):
        return f"/zones/{self.zone_id}/dns_records"

    def _first_record(self, params):
        result = self._api_request("GET", self._records_path, params={"type": "A", **params})
        if not result:
            return None
        try:
            return DnsRecord.model_validate(result[0])
        except (ValidationError, KeyError, TypeError, IndexError) as e:
            log.error("Cloudflare API returned a malformed DNS record list", params=params, error=str(e))
            raise CloudflareAPIError(f"Malformed DNS record in response for {params}: {e}") from e

    def find_record_by_name(self, name):
        record = self._first_record({"name": name})
        log.debug("Looked up DNS record by name", name=name, found=record is not None)
        return record

    def find_record_by_address(self, address):
        record = self._first_record({"content": address})
        log.debug("Looked up DNS record by address", ip=address, found=record is not None)
        return record

    def _record_body(self, name, address):
        return {
            "type": "A",
            "name": name,
            "content": address,
            "ttl": self.ttl,
            "proxied": False,
        }

    def create_record(self, name, address):
        self._api_request("POST", self._records_path, data=self._record_body(name, address))
        log.info("Successfully created DNS record", domain=name, ip=address)

    def update_record(self, record_id, name, address):
        self._api_request("PUT", f"{self._records_path}/{record_id}", data=self._record_body(name, address))
        log.info("Successfully updated DNS record", domain=name, ip=address, record_id=record_id)

    def delete_record(self, record_id):
        self._api_request("DELETE", f"{self._records_path}/{record_id}")
        log.info("Successfully removed DNS record", record_id=record_id)
