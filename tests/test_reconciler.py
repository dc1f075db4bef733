import unittest
from unittest.mock import MagicMock

from warp_dns.clients.cloudflare_client import CloudflareAPIError
from warp_dns.models import ActionKind, DnsRecord, ResolvedDevice
from warp_dns.reconciler import build_hostname, plan_mutation, reconcile


class FakeDnsStore:
    """In-memory zone that records every call made against it."""

    def __init__(self, records=None):
        self.records = {r.id: r for r in (records or [])}
        self.calls = []
        self._next_id = 100

    def find_record_by_name(self, name):
        self.calls.append(("find_by_name", name))
        return next((r for r in self.records.values() if r.name == name), None)

    def find_record_by_address(self, address):
        self.calls.append(("find_by_address", address))
        return next((r for r in self.records.values() if r.content == address), None)

    def create_record(self, name, address):
        self.calls.append(("create", name, address))
        self._next_id += 1
        record_id = str(self._next_id)
        self.records[record_id] = DnsRecord(id=record_id, name=name, content=address)

    def update_record(self, record_id, name, address):
        self.calls.append(("update", record_id, name, address))
        self.records[record_id] = DnsRecord(id=record_id, name=name, content=address)

    def delete_record(self, record_id):
        self.calls.append(("delete", record_id))
        del self.records[record_id]

    @property
    def mutations(self):
        return [c for c in self.calls if c[0] in ("create", "update", "delete")]


class TestBuildHostname(unittest.TestCase):

    def test_joins_name_and_suffix(self):
        self.assertEqual(build_hostname("laptop", "example.com"), "laptop.example.com")

    def test_leading_dot_in_suffix_is_ignored(self):
        self.assertEqual(build_hostname("laptop", ".example.com"), "laptop.example.com")


class TestPlanMutation(unittest.TestCase):

    def test_no_existing_record_plans_create(self):
        plan = plan_mutation("a.example.com", "10.0.0.1", None)

        self.assertEqual(plan.kind, ActionKind.CREATED)
        self.assertIsNone(plan.record_id)
        self.assertIsNone(plan.delete_record)

    def test_same_address_plans_no_change(self):
        existing = DnsRecord(id="1", name="a.example.com", content="10.0.0.1")

        plan = plan_mutation("a.example.com", "10.0.0.1", existing)

        self.assertEqual(plan.kind, ActionKind.NO_CHANGE)

    def test_different_address_with_duplicate_plans_delete_and_update(self):
        existing = DnsRecord(id="2", name="b.example.com", content="10.0.0.9")
        duplicate = DnsRecord(id="1", name="a.example.com", content="10.0.0.1")

        plan = plan_mutation("b.example.com", "10.0.0.1", existing, duplicate)

        self.assertEqual(plan.kind, ActionKind.UPDATED)
        self.assertEqual(plan.record_id, "2")
        self.assertEqual(plan.delete_record, duplicate)

    def test_existing_record_is_never_its_own_duplicate(self):
        existing = DnsRecord(id="2", name="b.example.com", content="10.0.0.9")

        plan = plan_mutation("b.example.com", "10.0.0.1", existing, existing)

        self.assertEqual(plan.kind, ActionKind.UPDATED)
        self.assertIsNone(plan.delete_record)


class TestReconcile(unittest.TestCase):

    def test_missing_record_is_created_once(self):
        # Arrange
        store = FakeDnsStore()
        device = ResolvedDevice(name="laptop", address="10.0.0.5")

        # Act
        action = reconcile(device, store, "example.com")

        # Assert
        self.assertEqual(store.mutations, [("create", "laptop.example.com", "10.0.0.5")])
        self.assertEqual(action.kind, ActionKind.CREATED)
        self.assertEqual(action.name, "laptop.example.com")
        self.assertEqual(action.to_response(), {"action": "created", "name": "laptop.example.com", "ipv4": "10.0.0.5"})

    def test_reconciling_twice_creates_then_reports_no_change(self):
        # Arrange
        store = FakeDnsStore()
        device = ResolvedDevice(name="laptop", address="10.0.0.5")

        # Act
        first = reconcile(device, store, "example.com")
        second = reconcile(device, store, "example.com")

        # Assert
        self.assertEqual(first.kind, ActionKind.CREATED)
        self.assertEqual(second.kind, ActionKind.NO_CHANGE)
        self.assertEqual(len(store.records), 1)

    def test_unchanged_address_makes_no_mutations(self):
        # Arrange
        store = FakeDnsStore([DnsRecord(id="1", name="laptop.example.com", content="10.0.0.5")])

        # Act
        action = reconcile(ResolvedDevice(name="laptop", address="10.0.0.5"), store, "example.com")

        # Assert
        self.assertEqual(action.kind, ActionKind.NO_CHANGE)
        self.assertEqual(store.mutations, [])
        self.assertNotIn(("find_by_address", "10.0.0.5"), store.calls)

    def test_changed_address_without_duplicate_updates_in_place(self):
        # Arrange
        store = FakeDnsStore([DnsRecord(id="1", name="laptop.example.com", content="10.0.0.5")])

        # Act
        action = reconcile(ResolvedDevice(name="laptop", address="10.0.0.6"), store, "example.com")

        # Assert
        self.assertEqual(action.kind, ActionKind.UPDATED)
        self.assertIsNone(action.deleted_duplicate_name)
        self.assertEqual(store.mutations, [("update", "1", "laptop.example.com", "10.0.0.6")])
        self.assertNotIn("deleted_duplicate", action.to_response())

    def test_duplicate_holding_the_address_is_deleted_before_update(self):
        # Arrange
        store = FakeDnsStore([
            DnsRecord(id="1", name="a.example.com", content="10.0.0.1"),
            DnsRecord(id="2", name="b.example.com", content="10.0.0.2"),
        ])

        # Act
        action = reconcile(ResolvedDevice(name="b", address="10.0.0.1"), store, "example.com")

        # Assert
        self.assertEqual(store.mutations, [
            ("delete", "1"),
            ("update", "2", "b.example.com", "10.0.0.1"),
        ])
        self.assertEqual(action.kind, ActionKind.UPDATED)
        self.assertEqual(action.deleted_duplicate_name, "a.example.com")
        self.assertEqual(action.to_response()["deleted_duplicate"], "a.example.com")
        self.assertEqual(list(store.records.values()), [DnsRecord(id="2", name="b.example.com", content="10.0.0.1")])

    def test_store_failure_propagates(self):
        # Arrange
        store = MagicMock()
        store.find_record_by_name.side_effect = CloudflareAPIError("boom", status_code=500)

        # Act / Assert
        with self.assertRaises(CloudflareAPIError):
            reconcile(ResolvedDevice(name="laptop", address="10.0.0.5"), store, "example.com")
        store.create_record.assert_not_called()

    def test_failed_update_after_delete_is_reported_and_not_rolled_back(self):
        # Arrange
        store = FakeDnsStore([
            DnsRecord(id="1", name="a.example.com", content="10.0.0.1"),
            DnsRecord(id="2", name="b.example.com", content="10.0.0.2"),
        ])
        store.update_record = MagicMock(side_effect=CloudflareAPIError("update failed"))
        on_partial_failure = MagicMock()

        # Act
        with self.assertRaises(CloudflareAPIError):
            reconcile(
                ResolvedDevice(name="b", address="10.0.0.1"),
                store,
                "example.com",
                on_partial_failure=on_partial_failure,
            )

        # Assert
        self.assertNotIn("1", store.records)
        self.assertEqual(store.records["2"].content, "10.0.0.2")
        on_partial_failure.assert_called_once()
        plan, error = on_partial_failure.call_args[0]
        self.assertEqual(plan.delete_record.name, "a.example.com")
        self.assertIsInstance(error, CloudflareAPIError)


if __name__ == '__main__':
    unittest.main()
