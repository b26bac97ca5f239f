"""
In-Memory Store Adapter Tests
==============================
Last-write-wins, merge-writes and per-order snapshot feeds.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

NOW = datetime(2025, 2, 12, 10, 0, 0, tzinfo=timezone.utc)


def entry(key, order_id="1001", checked=True, actor="marie", at=NOW):
    from engines.production.models import ChecklistEntry
    return ChecklistEntry(key, order_id, checked, actor, at)


class TestInMemoryChecklistStore:
    def test_set_get_query(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()
        store.set(entry("k2"))
        store.set(entry("k1"))
        store.set(entry("x1", order_id="2002"))
        assert store.get("k1").actor == "marie"
        assert [e.unit_key for e in store.query("gid://shopify/Order/1001")] == ["k1", "k2"]

    def test_last_write_wins_by_timestamp(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()
        newer = entry("k1", checked=True, actor="paul", at=NOW + timedelta(seconds=5))
        store.set(newer)
        stored = store.set(entry("k1", checked=False, actor="marie", at=NOW))
        assert stored == newer
        assert store.get("k1") == newer

    def test_equal_timestamp_overwrites(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()
        store.set(entry("k1", checked=True))
        store.set(entry("k1", checked=False))
        assert store.get("k1").checked is False

    def test_delete(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()
        store.set(entry("k1"))
        assert store.delete("k1") is True
        assert store.delete("k1") is False
        assert store.get("k1") is None

    def test_subscribe_receives_full_snapshot(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()
        snapshots = []
        subscription = store.subscribe("1001", snapshots.append)

        store.set(entry("k1"))
        store.set(entry("k2"))
        store.set(entry("x1", order_id="2002"))
        store.delete("k1")

        assert [[e.unit_key for e in s] for s in snapshots] == [["k1"], ["k1", "k2"], ["k2"]]

        subscription.unsubscribe()
        subscription.unsubscribe()
        store.set(entry("k3"))
        assert len(snapshots) == 3

    def test_failing_subscriber_does_not_break_write(self):
        from adapters.memory import InMemoryChecklistStore
        store = InMemoryChecklistStore()

        def broken(snapshot):
            raise RuntimeError("listener crashed")

        store.subscribe("1001", broken)
        store.set(entry("k1"))
        assert store.get("k1") is not None


class TestInMemoryProgressStore:
    def test_merge_only_touches_given_fields(self):
        from adapters.memory import InMemoryProgressStore
        store = InMemoryProgressStore()
        store.merge("1001", total_count=5)
        store.merge("1001", checked_count=2)
        counter = store.merge("1001")
        assert (counter.checked_count, counter.total_count) == (2, 5)
        assert store.get("gid://shopify/Order/1001") == counter

    def test_unknown_order(self):
        from adapters.memory import InMemoryProgressStore
        assert InMemoryProgressStore().get("1001") is None


class TestInMemoryPricingConfigStore:
    def test_returns_copies(self):
        from adapters.memory import InMemoryPricingConfigStore
        store = InMemoryPricingConfigStore([{"sku": "A", "base_price": "1"}])
        records = store.load_rule_records()
        records[0]["sku"] = "changed"
        assert store.load_rule_records()[0]["sku"] == "A"

    def test_replace_validates_before_swapping(self):
        from adapters.memory import InMemoryPricingConfigStore
        from engines.pricing.errors import RuleConfigurationError
        store = InMemoryPricingConfigStore([{"sku": "A", "base_price": "1"}])
        with pytest.raises(RuleConfigurationError):
            store.replace([{"sku": "B", "base_price": "1.0000001"}])
        assert store.load_rule_records() == [{"sku": "A", "base_price": "1"}]

        store.replace([{"sku": "B", "base_price": "2"}])
        assert store.load_rule_records()[0]["sku"] == "B"


class TestInMemoryBillingWorkflowStore:
    def test_invoice_status_replaced_per_target(self):
        from adapters.memory import InMemoryBillingWorkflowStore
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.workflow import InvoiceStatus
        store = InMemoryBillingWorkflowStore()
        store.save_invoice_status(InvoiceStatus(AdjustmentScope.WEEK, "2025-W07", True, "owner", NOW))
        store.save_invoice_status(InvoiceStatus(AdjustmentScope.WEEK, "2025-W07", False, "owner", NOW))

        assert store.get_invoice_status(AdjustmentScope.WEEK, "2025-W07").invoiced is False
        assert store.get_invoice_status(AdjustmentScope.MONTH, "2025-02") is None

    def test_blank_note_clears(self):
        from adapters.memory import InMemoryBillingWorkflowStore
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.workflow import BillingNote
        store = InMemoryBillingWorkflowStore()
        store.save_note(BillingNote(AdjustmentScope.ORDER, "1001", "paid by transfer", "owner", NOW))
        assert store.get_note(AdjustmentScope.ORDER, "1001").note == "paid by transfer"

        store.save_note(BillingNote(AdjustmentScope.ORDER, "1001", "  ", "owner", NOW))
        assert store.get_note(AdjustmentScope.ORDER, "1001") is None

    def test_fee_override_keyed_by_normalized_order(self):
        from adapters.memory import InMemoryBillingWorkflowStore
        from engines.billing.workflow import HandlingFeeOverride
        store = InMemoryBillingWorkflowStore()
        store.save_fee_override(
            HandlingFeeOverride("gid://shopify/Order/1001", Decimal("0"), "owner", NOW)
        )
        assert store.get_fee_override("1001").fee == Decimal("0")
        assert store.delete_fee_override("gid://shopify/Order/1001") is True
        assert store.delete_fee_override("1001") is False
