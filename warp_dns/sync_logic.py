import os
import time

import requests
import structlog

from .batch import decode_batch
from .clients.cloudflare_client import DEFAULT_API_URL, CloudflareAPIError
from .clients.device_client import DeviceDirectoryClient
from .clients.dns_client import DEFAULT_TTL, DnsRecordClient
from .models import ActionKind, ResolvedDevice
from .reconciler import reconcile

log = structlog.get_logger()

ENV_ACCOUNT_ID = "ACCOUNT_ID"
ENV_ZONE_ID = "ZONE_ID"
ENV_DOMAIN_SUFFIX = "DOMAIN_SUFFIX"
ENV_EMAIL = "EMAIL"
ENV_API_KEY = "API_KEY"
ENV_API_TOKEN = "API_TOKEN"
ENV_DNS_RECORD_TTL = "DNS_RECORD_TTL"
ENV_HTTP_TIMEOUT = "HTTP_TIMEOUT_SECONDS"
ENV_HTTP_MAX_RETRIES = "HTTP_MAX_RETRIES"
ENV_BATCH_TIME_BUDGET = "BATCH_TIME_BUDGET_SECONDS"
ENV_CLOUDFLARE_API_URL = "CLOUDFLARE_API_URL"


class ConfigurationError(ValueError):
    """Mandatory configuration is missing or still holds a placeholder value."""


def _int_from_env(var_name, default):
    raw_value = os.getenv(var_name)
    if raw_value in (None, ""):
        return default
    try:
        return int(raw_value)
    except ValueError:
        log.warning(
            f"Invalid value for {var_name}, using default",
            invalid_value=raw_value,
            default_value=default,
        )
        return default


def load_app_config_from_env():
    """
    Loads all application configuration from environment variables.

    Returns:
        dict: A dictionary containing the configuration parameters.

    Raises:
        ConfigurationError: If mandatory variables are missing or if
            placeholder values are detected for critical settings.
    """
    config = {}
    mandatory_vars = {
        ENV_ACCOUNT_ID: "Cloudflare Account ID",
        ENV_ZONE_ID: "Cloudflare Zone ID",
        ENV_DOMAIN_SUFFIX: "Domain Suffix",
    }
    missing_vars_messages = []

    for var_name, desc in mandatory_vars.items():
        value = os.getenv(var_name)
        if not value:
            missing_vars_messages.append(f"{desc} ({var_name})")
        config[var_name.lower()] = value

    config["api_token"] = os.getenv(ENV_API_TOKEN)
    config["email"] = os.getenv(ENV_EMAIL)
    config["api_key"] = os.getenv(ENV_API_KEY)
    if not config["api_token"]:
        for var_name, desc in {ENV_EMAIL: "Cloudflare Account Email", ENV_API_KEY: "Cloudflare API Key"}.items():
            if not os.getenv(var_name):
                missing_vars_messages.append(f"{desc} ({var_name}) or an API token ({ENV_API_TOKEN})")

    if missing_vars_messages:
        log.error("Missing mandatory environment variables", missing_vars=missing_vars_messages)
        raise ConfigurationError(f"Missing mandatory environment variables: {', '.join(missing_vars_messages)}")

    for var_name in (ENV_ACCOUNT_ID, ENV_ZONE_ID):
        if config[var_name.lower()].upper().startswith("YOUR_"):
            log.error(f"Placeholder value detected for {var_name}")
            raise ConfigurationError(f"Placeholder value detected for {var_name}")

    config["domain_suffix"] = config["domain_suffix"].strip().lstrip(".")
    example_suffixes = ["EXAMPLE.COM", "YOURDOMAIN.COM", "YOUR_DOMAIN_SUFFIX"]
    if config["domain_suffix"].upper() in example_suffixes:
        log.warning("Possible example/placeholder value detected for DOMAIN_SUFFIX", domain_suffix=config["domain_suffix"])

    config["dns_record_ttl"] = _int_from_env(ENV_DNS_RECORD_TTL, DEFAULT_TTL)
    config["http_timeout_seconds"] = _int_from_env(ENV_HTTP_TIMEOUT, 10)
    config["http_max_retries"] = _int_from_env(ENV_HTTP_MAX_RETRIES, 0)
    config["batch_time_budget_seconds"] = _int_from_env(ENV_BATCH_TIME_BUDGET, None)
    config["cloudflare_api_url"] = os.getenv(ENV_CLOUDFLARE_API_URL, DEFAULT_API_URL)

    log.debug("Successfully loaded configuration from environment variables.")
    return config


def sync_devices(unique_devices, directory, store, config, clock=time.monotonic):
    """
    Reconciles every device of a deduplicated batch, one at a time.

    Devices the directory cannot resolve are skipped without touching the
    zone. A failing DNS call skips only the device it happened on. When a
    time budget is configured, devices not yet started once it runs out are
    left for the next batch.

    Args:
        unique_devices (dict): Device id to device name, in batch order.
        directory (DeviceDirectoryClient): Resolves device ids to addresses.
        store (DnsRecordClient): The zone's record store.
        config (dict): The application configuration dictionary.

    Returns:
        list: The ReconciliationAction of every device that completed.
    """
    actions = []
    skipped = 0
    failed = 0
    budget = config.get("batch_time_budget_seconds")
    started_at = clock()

    for index, (device_id, device_name) in enumerate(unique_devices.items()):
        if budget is not None and clock() - started_at >= budget:
            log.warning(
                "Time budget exhausted, leaving remaining devices for the next batch",
                budget_seconds=budget,
                remaining_devices=len(unique_devices) - index,
            )
            break

        address = directory.lookup_device(device_id)
        if not address:
            log.info("Skipping device: no details or IPv4 found", device_id=device_id, device_name=device_name)
            skipped += 1
            continue

        device = ResolvedDevice(name=device_name, address=address)
        try:
            action = reconcile(device, store, config["domain_suffix"], on_partial_failure=_log_partial_failure)
        except (CloudflareAPIError, requests.exceptions.RequestException) as e:
            failed += 1
            log.warning("Failed to reconcile DNS record for device", device_id=device_id, device_name=device_name, ip=address, error=str(e))
            continue
        actions.append(action)

    log.info(
        "WARP to DNS Sync Summary",
        created=sum(1 for a in actions if a.kind == ActionKind.CREATED),
        updated=sum(1 for a in actions if a.kind == ActionKind.UPDATED),
        unchanged=sum(1 for a in actions if a.kind == ActionKind.NO_CHANGE),
        skipped=skipped,
        failed=failed,
        total_devices=len(unique_devices),
    )
    return actions


def _log_partial_failure(plan, error):
    log.error(
        "Duplicate DNS record was deleted but the follow-up update failed",
        domain=plan.name,
        ip=plan.address,
        deleted_duplicate=plan.delete_record.name,
        error=str(error),
    )


def process_logpush_batch(body, config=None):
    """
    Decodes a gzip-compressed Logpush batch and reconciles every device in it.

    Returns:
        list: The action log, serialised for the HTTP response.
    """
    unique_devices = decode_batch(body)
    if config is None:
        config = load_app_config_from_env()
    directory = DeviceDirectoryClient(config)
    store = DnsRecordClient(config)
    actions = sync_devices(unique_devices, directory, store, config)
    return [action.to_response() for action in actions]
