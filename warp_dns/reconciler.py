import structlog

from .clients.cloudflare_client import CloudflareAPIError
from .models import ActionKind, ReconciliationAction, ZoneMutationPlan

log = structlog.get_logger()


def build_hostname(device_name, domain_suffix):
    return f"{device_name}.{domain_suffix.lstrip('.')}"


def plan_mutation(hostname, address, existing, duplicate=None):
    """
    Decides how to bring ``hostname`` in line with ``address``.

    Args:
        hostname (str): The fully-qualified name the device should resolve as.
        address (str): The device's current IPv4 address.
        existing (DnsRecord | None): The A record currently holding ``hostname``.
        duplicate (DnsRecord | None): Another A record already bound to
            ``address``, if one was found.

    Returns:
        ZoneMutationPlan: What to create, update or delete. No store access
            happens here.
    """
    if existing is None:
        return ZoneMutationPlan(kind=ActionKind.CREATED, name=hostname, address=address)

    if existing.content == address:
        return ZoneMutationPlan(kind=ActionKind.NO_CHANGE, name=hostname, address=address, record_id=existing.id)

    if duplicate is not None and duplicate.id == existing.id:
        duplicate = None

    return ZoneMutationPlan(
        kind=ActionKind.UPDATED,
        name=hostname,
        address=address,
        record_id=existing.id,
        delete_record=duplicate,
    )


def apply_plan(plan, store, on_partial_failure=None):
    """
    Executes a plan against the DNS store and returns the audit action.

    A duplicate is always deleted before the update is sent. If the update
    then fails, the deletion stays in place; ``on_partial_failure`` is told
    about it and the error is re-raised.
    """
    if plan.kind == ActionKind.CREATED:
        store.create_record(plan.name, plan.address)
    elif plan.kind == ActionKind.UPDATED:
        if plan.delete_record is not None:
            log.info(
                "Deleting duplicate DNS record bound to the same address",
                duplicate=plan.delete_record.name,
                ip=plan.address,
                domain=plan.name,
            )
            store.delete_record(plan.delete_record.id)
            try:
                store.update_record(plan.record_id, plan.name, plan.address)
            except CloudflareAPIError as e:
                if on_partial_failure is not None:
                    on_partial_failure(plan, e)
                raise
        else:
            store.update_record(plan.record_id, plan.name, plan.address)

    return ReconciliationAction(
        kind=plan.kind,
        name=plan.name,
        address=plan.address,
        deleted_duplicate_name=plan.delete_record.name if plan.delete_record is not None else None,
    )


def reconcile(device, store, domain_suffix, on_partial_failure=None):
    """
    Reconciles the zone for a single resolved device.

    The duplicate lookup by address only happens when the device's hostname
    already exists with a different address. Store errors propagate to the
    caller unchanged.
    """
    hostname = build_hostname(device.name, domain_suffix)
    existing = store.find_record_by_name(hostname)

    duplicate = None
    if existing is not None and existing.content != device.address:
        duplicate = store.find_record_by_address(device.address)

    plan = plan_mutation(hostname, device.address, existing, duplicate)
    action = apply_plan(plan, store, on_partial_failure=on_partial_failure)
    log.debug("Reconciled device", domain=hostname, ip=device.address, action=action.kind.value)
    return action
