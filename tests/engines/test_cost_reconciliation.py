"""
Billing Engine — Cost Reconciliation Tests
============================================
Order and period costs: checked units only, handling fee once per
order, additive balance adjustments, batch exclusion, idempotence.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.config import ProductionSettings
from core.events import SubscriberRegistry
from core.time import FixedClock

NOW = datetime(2025, 2, 14, 18, 0, 0, tzinfo=timezone.utc)
CREATED = datetime(2025, 2, 12, 9, 0, 0, tzinfo=timezone.utc)
SETTINGS = ProductionSettings(handling_fee=Decimal("5"))

RULE_RECORDS = [
    {"sku": "A", "color": "Red", "base_price": "10"},
    {
        "sku": "B",
        "color": "Blue",
        "base_price": "15",
        "metafield_modifiers": [
            {"namespace": "custom", "key": "print", "value": "X", "amount": "2"},
        ],
    },
]


def scenario_order(order_id="1001", tags=(), created_at=CREATED):
    from engines.production.models import LineItem, Metafield, Order, SelectedOption
    return Order(
        order_id=order_id,
        tags=tuple(tags),
        created_at=created_at,
        line_items=(
            LineItem(
                sku="A", quantity=2, position=0,
                selected_options=(SelectedOption("Color", "Red"),),
            ),
            LineItem(
                sku="B", quantity=1, position=1,
                selected_options=(SelectedOption("Color", "Blue"),),
                metafields=(Metafield("custom", "print", "X"),),
            ),
        ),
    )


class Shop:
    """Engines wired to in-memory stores, sharing one clock."""

    def __init__(self, records=None, registry=None):
        from adapters.memory import (
            InMemoryAdjustmentStore,
            InMemoryBillingStore,
            InMemoryBillingWorkflowStore,
            InMemoryChecklistStore,
            InMemoryPricingConfigStore,
            InMemoryProgressStore,
        )
        from engines.billing.services import BillingWorkflowService, CostReconciliationService
        from engines.production.services import ProgressAggregator
        self.clock = FixedClock(NOW)
        self.checklist = InMemoryChecklistStore()
        self.billing = InMemoryBillingStore()
        self.adjustments = InMemoryAdjustmentStore()
        self.workflow_store = InMemoryBillingWorkflowStore()
        self.aggregator = ProgressAggregator(
            checklist_store=self.checklist,
            progress_store=InMemoryProgressStore(),
            clock=self.clock,
            settings=SETTINGS,
        )
        self.service = CostReconciliationService(
            checklist_store=self.checklist,
            billing_store=self.billing,
            adjustment_store=self.adjustments,
            pricing_config_store=InMemoryPricingConfigStore(
                RULE_RECORDS if records is None else records
            ),
            workflow_store=self.workflow_store,
            clock=self.clock,
            settings=SETTINGS,
            event_registry=registry,
        )
        self.workflow = BillingWorkflowService(
            workflow_store=self.workflow_store,
            clock=self.clock,
            event_registry=registry,
        )

    def check(self, order, *positions):
        """Check the first unit of each given line item position."""
        from engines.production.identity import units_for_order
        for position in positions:
            key = next(
                u.unit_key for u in units_for_order(order, SETTINGS)
                if u.line_item_index == position
                and self.checklist.get(u.unit_key) is None
            )
            self.aggregator.toggle(order.order_id, key, True, "marie")


# ══════════════════════════════════════════════════════════════
# ORDER COST
# ══════════════════════════════════════════════════════════════

class TestComputeOrderCost:
    def test_scenario_one_of_a_and_b_with_metafield(self):
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 1)

        record = shop.service.compute_order_cost(order)

        assert record.total == Decimal("32")
        assert record.handling_fee == Decimal("5")
        assert [line.amount for line in record.lines] == [Decimal("10"), Decimal("17")]
        assert record.lines[1].modifiers == ("custom.print=X",)
        assert record.unpriced == ()
        assert not record.stale_keys_detected

    def test_no_units_checked_means_no_handling_fee(self):
        shop = Shop()
        record = shop.service.compute_order_cost(scenario_order())
        assert record.total == Decimal("0")
        assert record.handling_fee == Decimal("0")

    def test_no_units_checked_keeps_adjustment(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        shop.service.save_adjustment(AdjustmentScope.ORDER, "1001", "-3.25", "owner")
        record = shop.service.compute_order_cost(scenario_order())
        assert record.total == Decimal("-3.25")

    def test_checked_units_multiply_unit_price(self):
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 0)
        record = shop.service.compute_order_cost(order)
        assert record.lines[0].checked_units == 2
        assert record.total == Decimal("25")

    def test_order_and_line_item_adjustments_are_additive(self):
        from engines.billing.adjustments import AdjustmentScope, line_item_ref
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        shop.service.save_adjustment(AdjustmentScope.ORDER, "gid://shopify/Order/1001", "1.5", "owner")
        shop.service.save_adjustment(
            AdjustmentScope.LINE_ITEM, line_item_ref("1001", 1), "-2", "owner"
        )

        record = shop.service.compute_order_cost(order)

        assert record.adjustment_total == Decimal("-0.5")
        assert record.total == Decimal("10") + Decimal("5") + Decimal("-0.5")

    def test_saving_adjustment_again_replaces_it(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        shop.service.save_adjustment(AdjustmentScope.ORDER, "1001", "4", "owner")
        shop.service.save_adjustment(AdjustmentScope.ORDER, "1001", "1", "owner")
        assert shop.service.compute_order_cost(scenario_order()).total == Decimal("1")

    def test_invalid_adjustment_amount(self):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.errors import InvalidAdjustmentError
        shop = Shop()
        with pytest.raises(InvalidAdjustmentError):
            shop.service.save_adjustment(AdjustmentScope.ORDER, "1001", "lots", "owner")

    def test_line_item_adjustment_with_storefront_order_id_applies(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        saved = shop.service.save_adjustment(
            AdjustmentScope.LINE_ITEM, "gid://shopify/Order/1001#0", "-1", "owner"
        )

        record = shop.service.compute_order_cost(order)

        assert saved.scope_ref == "1001#0"
        assert record.adjustment_total == Decimal("-1")
        assert record.total == Decimal("14")

    @pytest.mark.parametrize("amount", ["0.0000001", "1000000000000"])
    def test_adjustment_amount_beyond_stored_precision_rejected(self, amount):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.errors import InvalidAdjustmentError
        shop = Shop()
        with pytest.raises(InvalidAdjustmentError):
            shop.service.save_adjustment(AdjustmentScope.ORDER, "1001", amount, "owner")
        assert shop.adjustments.get(AdjustmentScope.ORDER, "1001") is None

    def test_handling_fee_override_replaces_shop_fee(self):
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 1)
        shop.workflow.set_handling_fee("gid://shopify/Order/1001", "2.5", "owner")

        record = shop.service.compute_order_cost(order)

        assert record.handling_fee == Decimal("2.5")
        assert record.total == Decimal("10") + Decimal("17") + Decimal("2.5")

    def test_handling_fee_override_still_needs_a_checked_unit(self):
        shop = Shop()
        shop.workflow.set_handling_fee("1001", "8", "owner")
        assert shop.service.compute_order_cost(scenario_order()).total == Decimal("0")

    def test_cleared_override_restores_shop_fee(self):
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        shop.workflow.set_handling_fee("1001", "0", "owner")
        assert shop.service.compute_order_cost(order).handling_fee == Decimal("0")

        assert shop.workflow.clear_handling_fee("1001", "owner") is True
        assert shop.service.compute_order_cost(order).handling_fee == Decimal("5")

    def test_unpriced_units_flagged_and_fee_still_applies(self):
        shop = Shop(records=[{"sku": "A", "color": "Red", "base_price": "10"}])
        order = scenario_order()
        shop.check(order, 1)

        record = shop.service.compute_order_cost(order)

        assert record.total == Decimal("5")
        assert len(record.unpriced) == 1
        assert record.unpriced[0].sku == "B"
        assert record.unpriced[0].checked_units == 1
        assert record.lines[0].priced is False

    def test_cancelled_line_not_billed(self):
        from engines.production.models import LineItem, Order
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 1)
        cancelled = Order(
            order_id=order.order_id,
            created_at=order.created_at,
            line_items=(
                order.line_items[0],
                LineItem(
                    sku="B", quantity=1, position=1,
                    selected_options=order.line_items[1].selected_options,
                    metafields=order.line_items[1].metafields,
                    cancelled=True,
                ),
            ),
        )
        assert shop.service.compute_order_cost(cancelled).total == Decimal("15")

    def test_legacy_entries_flagged_and_ignored(self):
        from engines.production.models import ChecklistEntry
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        shop.checklist.put_raw(ChecklistEntry("1001_A_Red_0", "1001", True, "old", NOW))
        shop.checklist.put_raw(ChecklistEntry("1001_A_Red_1", "1001", True, "old", NOW))

        record = shop.service.compute_order_cost(order)

        assert record.stale_keys_detected
        assert record.total == Decimal("15")

    def test_recompute_is_idempotent(self):
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 1)
        first = shop.service.compute_order_cost(order)
        second = shop.service.compute_order_cost(order)
        assert first == second
        assert shop.billing.count() == 1

    def test_record_persisted_and_serialized(self):
        from engines.billing.records import RecordKind, format_amount
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0, 1)
        shop.service.compute_order_cost(order)

        stored = shop.service.last_record(RecordKind.ORDER, "1001")
        data = stored.to_dict()

        assert data["total"] == "32"
        assert data["computedAt"] == "2025-02-14T18:00:00+00:00"
        assert format_amount(stored.total) == "32.00"

    def test_emits_cost_event(self):
        from engines.billing.events import BILLING_ORDER_COST_COMPUTED_V1
        registry = SubscriberRegistry()
        received = []
        registry.register_subscriber(BILLING_ORDER_COST_COMPUTED_V1, received.append)
        shop = Shop(registry=registry)
        order = scenario_order()
        shop.check(order, 0)

        shop.service.compute_order_cost(order)

        assert received[0].payload["total"] == "15"
        assert received[0].payload["record_id"] == "1001"

    def test_bad_pricing_config_fails_at_load(self):
        from engines.pricing.errors import RuleConfigurationError
        with pytest.raises(RuleConfigurationError):
            Shop(records=[{"sku": "A"}])


# ══════════════════════════════════════════════════════════════
# PERIOD COST
# ══════════════════════════════════════════════════════════════

class TestComputePeriodCost:
    def test_sums_orders_and_dedupes(self):
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        first, second = scenario_order("1001"), scenario_order("1002")
        shop.check(first, 0, 1)
        shop.check(second, 0)

        record = shop.service.compute_period_cost(
            BillingPeriod.week_of(CREATED), [first, second, first]
        )

        assert record.record_id == "2025-W07"
        assert record.order_ids == ("1001", "1002")
        assert record.total == Decimal("32") + Decimal("15")
        assert record.handling_fee == Decimal("10")

    def test_batch_orders_excluded(self):
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        regular, batch = scenario_order("1001"), scenario_order("1002", tags=("BATCH-FEB",))
        shop.check(regular, 0)
        shop.check(batch, 0)

        record = shop.service.compute_period_cost(BillingPeriod.month_of(CREATED), [regular, batch])

        assert record.order_ids == ("1001",)
        assert record.total == Decimal("15")

    def test_orders_outside_window_excluded(self):
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        inside = scenario_order("1001")
        outside = scenario_order("1002", created_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
        shop.check(inside, 0)
        shop.check(outside, 0)

        record = shop.service.compute_period_cost(BillingPeriod.month_of(CREATED), [inside, outside])

        assert record.order_ids == ("1001",)

    def test_period_adjustment_argument(self):
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        record = shop.service.compute_period_cost(
            BillingPeriod.week_of(CREATED), [order], period_adjustment=Decimal("-5")
        )
        assert record.total == Decimal("10")
        assert record.adjustment_total == Decimal("-5")

    def test_stored_period_adjustment_only_for_its_scope(self):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        order = scenario_order()
        shop.check(order, 0)
        shop.service.save_adjustment(AdjustmentScope.WEEK, "2025-W07", "7", "owner")
        shop.service.save_adjustment(AdjustmentScope.MONTH, "2025-02", "20", "owner")

        week = shop.service.compute_period_cost(BillingPeriod.week_of(CREATED), [order])
        month = shop.service.compute_period_cost(BillingPeriod.month_of(CREATED), [order])

        assert week.total == Decimal("22")
        assert month.total == Decimal("35")

    def test_empty_period(self):
        from engines.billing.periods import BillingPeriod
        shop = Shop()
        record = shop.service.compute_period_cost(BillingPeriod.month_of(CREATED), [])
        assert record.total == Decimal("0")
        assert record.order_ids == ()


class TestBillingPeriod:
    def test_week_window(self):
        from engines.billing.periods import BillingPeriod
        week = BillingPeriod.week_of(datetime(2025, 2, 16, 23, 0, tzinfo=timezone.utc))
        assert week.period_id == "2025-W07"
        assert week.window.start == datetime(2025, 2, 10, tzinfo=timezone.utc)
        assert week.contains(datetime(2025, 2, 16, 23, 59, 59, tzinfo=timezone.utc))
        assert not week.contains(datetime(2025, 2, 17, tzinfo=timezone.utc))

    def test_iso_week_crosses_year(self):
        from engines.billing.periods import BillingPeriod
        assert BillingPeriod.week_of(datetime(2024, 12, 30, tzinfo=timezone.utc)).period_id == "2025-W01"

    def test_december_month(self):
        from engines.billing.periods import BillingPeriod
        month = BillingPeriod.month_of(datetime(2024, 12, 31, 12, tzinfo=timezone.utc))
        assert month.period_id == "2024-12"
        assert not month.contains(datetime(2025, 1, 1, tzinfo=timezone.utc))

    def test_from_id(self):
        from engines.billing.periods import BillingPeriod
        assert BillingPeriod.from_id("2025-W07") == BillingPeriod.week_of(CREATED)
        assert BillingPeriod.from_id("2025-02") == BillingPeriod.month_of(CREATED)

    @pytest.mark.parametrize("bad", ["2025-13", "2025-W60", "Feb 2025", ""])
    def test_from_id_rejects(self, bad):
        from engines.billing.errors import InvalidPeriodError
        from engines.billing.periods import BillingPeriod
        with pytest.raises(InvalidPeriodError):
            BillingPeriod.from_id(bad)


class TestFormatAmount:
    def test_half_up_at_the_cent(self):
        from engines.billing.records import format_amount
        assert format_amount(Decimal("2.675")) == "2.68"
        assert format_amount(Decimal("-1.005")) == "-1.01"
        assert format_amount(Decimal("12.5")) == "12.50"


class TestBalanceAdjustment:
    def test_store_document_roundtrip(self):
        from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
        adjustment = BalanceAdjustment(
            AdjustmentScope.LINE_ITEM, "1001#2", Decimal("-4.5"), "owner", "misprint", NOW
        )
        data = adjustment.to_dict()
        assert data["amount"] == "-4.5"
        assert data["scopeRef"] == "1001#2"
        assert BalanceAdjustment.from_dict(data) == adjustment

    @pytest.mark.parametrize("data", [
        {"scope": "YEAR", "scopeRef": "2025", "amount": "1"},
        {"scope": "ORDER", "scopeRef": "1001", "amount": "abc"},
        {"scope": "ORDER", "scopeRef": "", "amount": "1"},
    ])
    def test_malformed_documents_rejected(self, data):
        from engines.billing.adjustments import BalanceAdjustment
        from engines.billing.errors import InvalidAdjustmentError
        with pytest.raises(InvalidAdjustmentError):
            BalanceAdjustment.from_dict(data)

    def test_order_ref_normalized(self):
        from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
        adjustment = BalanceAdjustment(AdjustmentScope.ORDER, "gid://shopify/Order/1001", Decimal("1"))
        assert adjustment.scope_ref == "1001"

    @pytest.mark.parametrize("ref", ["1001", "1001#", "#2", "1001#two"])
    def test_malformed_line_item_ref_rejected(self, ref):
        from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
        from engines.billing.errors import InvalidAdjustmentError
        with pytest.raises(InvalidAdjustmentError):
            BalanceAdjustment(AdjustmentScope.LINE_ITEM, ref, Decimal("1"))

    def test_trailing_zeros_within_precision(self):
        from engines.billing.adjustments import AdjustmentScope, BalanceAdjustment
        adjustment = BalanceAdjustment(AdjustmentScope.ORDER, "1001", Decimal("2.50000000"))
        assert adjustment.amount == Decimal("2.5")


# ══════════════════════════════════════════════════════════════
# INVOICING WORKFLOW
# ══════════════════════════════════════════════════════════════

class TestBillingWorkflow:
    @pytest.mark.parametrize("scope_name, ref", [
        ("ORDER", "gid://shopify/Order/1001"),
        ("WEEK", "2025-W07"),
        ("MONTH", "2025-02"),
    ])
    def test_invoiced_flag_per_target(self, scope_name, ref):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        scope = AdjustmentScope(scope_name)
        assert shop.workflow.is_invoiced(scope, ref) is False

        status = shop.workflow.set_invoiced(scope, ref, True, "owner")

        assert status.updated_at == NOW
        assert status.actor == "owner"
        assert shop.workflow.is_invoiced(scope, ref) is True
        shop.workflow.set_invoiced(scope, ref, False, "owner")
        assert shop.workflow.is_invoiced(scope, ref) is False

    def test_order_invoiced_flag_is_not_the_period_flag(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        shop.workflow.set_invoiced(AdjustmentScope.ORDER, "1001", True, "owner")
        assert shop.workflow.is_invoiced(AdjustmentScope.WEEK, "2025-W07") is False

    @pytest.mark.parametrize("scope_name, ref", [
        ("LINE_ITEM", "1001#0"),
        ("WEEK", "2025-02"),
        ("MONTH", "2025-W07"),
        ("MONTH", "2025-13"),
        ("ORDER", "  "),
    ])
    def test_bad_targets_rejected(self, scope_name, ref):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.errors import InvalidBillingEntryError
        shop = Shop()
        with pytest.raises(InvalidBillingEntryError):
            shop.workflow.set_invoiced(AdjustmentScope(scope_name), ref, True, "owner")

    def test_invoiced_must_be_bool_and_actor_given(self):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.errors import InvalidBillingEntryError
        shop = Shop()
        with pytest.raises(InvalidBillingEntryError, match="bool"):
            shop.workflow.set_invoiced(AdjustmentScope.ORDER, "1001", 1, "owner")
        with pytest.raises(InvalidBillingEntryError, match="actor"):
            shop.workflow.set_invoiced(AdjustmentScope.ORDER, "1001", True, "")

    def test_notes_per_order_week_and_month(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        shop.workflow.save_note(AdjustmentScope.ORDER, "1001", "reprint 2 tees", "owner")
        shop.workflow.save_note(AdjustmentScope.WEEK, "2025-W07", "late pickup", "owner")
        shop.clock.advance(60)
        shop.workflow.save_note(AdjustmentScope.MONTH, "2025-02", "first", "owner")
        saved = shop.workflow.save_note(AdjustmentScope.MONTH, "2025-02", "second", "paul")

        assert shop.workflow.note(AdjustmentScope.ORDER, "gid://shopify/Order/1001").note == "reprint 2 tees"
        assert shop.workflow.note(AdjustmentScope.WEEK, "2025-W07").note == "late pickup"
        month = shop.workflow.note(AdjustmentScope.MONTH, "2025-02")
        assert month == saved
        assert (month.note, month.actor) == ("second", "paul")

    def test_empty_note_clears(self):
        from engines.billing.adjustments import AdjustmentScope
        shop = Shop()
        shop.workflow.save_note(AdjustmentScope.ORDER, "1001", "call client", "owner")
        shop.workflow.save_note(AdjustmentScope.ORDER, "1001", "", "owner")
        assert shop.workflow.note(AdjustmentScope.ORDER, "1001") is None

    @pytest.mark.parametrize("fee", ["-1", "abc", "0.0000001"])
    def test_bad_handling_fee_rejected(self, fee):
        from engines.billing.errors import InvalidBillingEntryError
        shop = Shop()
        with pytest.raises(InvalidBillingEntryError):
            shop.workflow.set_handling_fee("1001", fee, "owner")
        assert shop.workflow.handling_fee_override("1001") is None

    def test_clearing_missing_override(self):
        shop = Shop()
        assert shop.workflow.clear_handling_fee("1001", "owner") is False

    def test_emits_workflow_events(self):
        from engines.billing.adjustments import AdjustmentScope
        from engines.billing.events import (
            BILLING_HANDLING_FEE_OVERRIDDEN_V1,
            BILLING_INVOICE_STATUS_SET_V1,
            BILLING_NOTE_SAVED_V1,
        )
        registry = SubscriberRegistry()
        seen = []
        for event_type in (
            BILLING_INVOICE_STATUS_SET_V1,
            BILLING_NOTE_SAVED_V1,
            BILLING_HANDLING_FEE_OVERRIDDEN_V1,
        ):
            registry.register_subscriber(event_type, seen.append)
        shop = Shop(registry=registry)

        shop.workflow.set_invoiced(AdjustmentScope.WEEK, "2025-W07", True, "owner")
        shop.workflow.save_note(AdjustmentScope.ORDER, "1001", "ok", "owner")
        shop.workflow.set_handling_fee("1001", "3", "owner")
        shop.workflow.clear_handling_fee("1001", "owner")

        assert [e.event_type for e in seen] == [
            BILLING_INVOICE_STATUS_SET_V1,
            BILLING_NOTE_SAVED_V1,
            BILLING_HANDLING_FEE_OVERRIDDEN_V1,
            BILLING_HANDLING_FEE_OVERRIDDEN_V1,
        ]
        assert seen[0].payload["invoiced"] is True
        assert seen[2].payload["fee"] == "3"
        assert seen[3].payload["fee"] is None
