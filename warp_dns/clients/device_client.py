from ipaddress import AddressValueError, IPv4Address

import structlog

from .cloudflare_client import CloudflareAPIError, CloudflareClient

log = structlog.get_logger()


class DeviceDirectoryClient(CloudflareClient):
    """Looks up WARP-enrolled devices in a Cloudflare account."""

    def __init__(self, config):
        super().__init__(config)
        self.account_id = config["account_id"]

    def lookup_device(self, device_id):
        """
        Resolves a device identifier to its current WARP IPv4 address.

        Args:
            device_id (str): The Logpush ``DeviceID`` value.

        Returns:
            str | None: The dotted-quad address, or None if the device is
                unknown, has no address, or the lookup failed for any reason.
        """
        try:
            result = self._api_request("GET", f"/accounts/{self.account_id}/warp/{device_id}")
        except CloudflareAPIError as e:
            log.warning("Failed to retrieve details for device", device_id=device_id, error=str(e))
            return None

        metadata = result.get("metadata") if isinstance(result, dict) else None
        address = metadata.get("ipv4") if isinstance(metadata, dict) else None
        if not address:
            log.info("No IPv4 address found for device", device_id=device_id)
            return None

        try:
            return str(IPv4Address(str(address).strip()))
        except AddressValueError:
            log.warning("Device reported an invalid IPv4 address", device_id=device_id, ipv4=address)
            return None
