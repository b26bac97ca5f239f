"""
Billing Engine — Cost Reconciliation Service
==============================================
Turns checked production units into money.

compute_order_cost(order):
    1. Read the order's checklist entries once
    2. Per live line item: checked units × price_unit()
    3. + handling fee, once, if any unit of the order is checked
    4. + ORDER and LINE_ITEM balance adjustments
    5. Persist one BillingRecord (whole-record replace)

compute_period_cost(period, orders):
    dedupe by order id → drop excluded channels (batch orders) →
    drop orders created outside the window → sum order totals →
    + WEEK/MONTH adjustment → persist one period record

compute_order_cost uses the order's handling-fee override when one is
saved in the workflow store, the shop-wide fee otherwise.
BillingWorkflowService records invoiced flags, billing notes and
those overrides.

Costs always come from a fresh scan of the entries, never from the
progress counter, so recomputing is idempotent and unaffected by a
drifted counter. Units with no price rule are billed at 0 and listed
in the record's `unpriced` section.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, List, Optional

from core.config import ProductionSettings, load_production_settings, to_decimal
from core.events import SubscriberRegistry, emit
from core.time import Clock, get_default_clock
from engines.billing.adjustments import (
    AdjustmentScope,
    BalanceAdjustment,
    line_item_ref,
)
from engines.billing.errors import InvalidAdjustmentError, InvalidBillingEntryError
from engines.billing.events import (
    BILLING_ADJUSTMENT_SAVED_V1,
    BILLING_HANDLING_FEE_OVERRIDDEN_V1,
    BILLING_INVOICE_STATUS_SET_V1,
    BILLING_NOTE_SAVED_V1,
    BILLING_ORDER_COST_COMPUTED_V1,
    BILLING_PERIOD_COST_COMPUTED_V1,
    build_adjustment_saved_payload,
    build_cost_computed_payload,
    build_fee_overridden_payload,
    build_invoice_status_payload,
    build_note_saved_payload,
)
from engines.billing.periods import BillingPeriod
from engines.billing.ports import (
    AdjustmentStore,
    BillingStore,
    BillingWorkflowStore,
    PricingConfigStore,
)
from engines.billing.records import (
    BillingRecord,
    CostLine,
    RecordKind,
    UnpricedUnits,
)
from engines.billing.workflow import (
    BillingNote,
    HandlingFeeOverride,
    InvoiceStatus,
    effective_handling_fee,
    normalize_target,
)
from engines.pricing.engine import UnitAttributes, price_unit
from engines.pricing.rules import RuleSet
from engines.production.identity import live_unit_keys, units_for_line_item
from engines.production.models import Order, normalize_order_id
from engines.production.ports import ChecklistStore
from engines.production.services import audit_entries

logger = logging.getLogger("printshop.billing")

ZERO = Decimal("0")


class CostReconciliationService:
    def __init__(
        self,
        *,
        checklist_store: ChecklistStore,
        billing_store: BillingStore,
        adjustment_store: AdjustmentStore,
        rules: Optional[RuleSet] = None,
        pricing_config_store: Optional[PricingConfigStore] = None,
        workflow_store: Optional[BillingWorkflowStore] = None,
        clock: Optional[Clock] = None,
        settings: Optional[ProductionSettings] = None,
        event_registry: Optional[SubscriberRegistry] = None,
    ):
        if rules is None and pricing_config_store is None:
            raise ValueError("Either rules or pricing_config_store is required.")
        self._checklist = checklist_store
        self._billing = billing_store
        self._adjustments = adjustment_store
        self._pricing_config = pricing_config_store
        self._workflow = workflow_store
        self._clock = clock or get_default_clock()
        self._settings = settings or load_production_settings()
        self._event_registry = event_registry
        self._rules = rules if rules is not None else self.reload_rules()

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def reload_rules(self) -> RuleSet:
        """Re-read and validate the pricing configuration."""
        if self._pricing_config is None:
            return self._rules
        rules = RuleSet.from_records(
            self._pricing_config.load_rule_records(),
            color_aliases=self._settings.color_aliases,
        )
        for sku, color in rules.duplicates():
            logger.warning(
                f"Price rule for sku={sku!r} color={color or '*'} is configured "
                f"more than once; the first by priority wins"
            )
        self._rules = rules
        logger.info(f"Loaded {len(rules)} price rules")
        return rules

    # ══════════════════════════════════════════════════════════════
    # ORDER COST
    # ══════════════════════════════════════════════════════════════

    def compute_order_cost(self, order: Order) -> BillingRecord:
        oid = order.order_id
        audit = audit_entries(
            oid,
            self._checklist.query(oid),
            live_unit_keys(order, self._settings),
        )
        if audit.legacy_keys:
            logger.warning(
                f"Order {oid} holds {len(audit.legacy_keys)} legacy-format entries; "
                f"cost computed from current-format entries only"
            )

        lines: List[CostLine] = []
        unpriced: List[UnpricedUnits] = []
        for line_item in order.live_line_items:
            units = units_for_line_item(oid, line_item, self._settings)
            checked = sum(1 for unit in units if unit.unit_key in audit.checked_keys)
            if not checked:
                continue
            attributes = UnitAttributes.from_line_item(line_item, self._settings)
            quote = price_unit(attributes, self._rules)
            lines.append(CostLine(
                line_item_index=line_item.position,
                sku=attributes.sku,
                color=attributes.color,
                checked_units=checked,
                unit_price=quote.amount,
                amount=quote.times(checked),
                rule=quote.rule.label() if quote.rule else "",
                modifiers=quote.applied,
                priced=quote.matched,
            ))
            if not quote.matched:
                logger.warning(
                    f"Order {oid} line {line_item.position}: no price rule for "
                    f"sku={attributes.sku!r} color={attributes.color!r}; "
                    f"{checked} checked units billed at 0"
                )
                unpriced.append(UnpricedUnits(
                    order_id=oid,
                    line_item_index=line_item.position,
                    sku=attributes.sku,
                    color=attributes.color,
                    checked_units=checked,
                ))

        handling_fee = self._handling_fee(oid) if lines else ZERO
        adjustment_total = self._order_adjustments(order)
        subtotal = sum((line.amount for line in lines), ZERO)

        record = BillingRecord(
            record_id=oid,
            kind=RecordKind.ORDER,
            total=subtotal + handling_fee + adjustment_total,
            computed_at=self._clock.now_utc(),
            lines=tuple(lines),
            handling_fee=handling_fee,
            adjustment_total=adjustment_total,
            unpriced=tuple(unpriced),
            stale_keys_detected=bool(audit.legacy_keys),
            order_ids=(oid,),
        )
        self._billing.save(record)
        logger.info(
            f"Order {oid} cost computed: {record.total} "
            f"({record.checked_units} checked units)"
        )
        emit(
            self._event_registry,
            BILLING_ORDER_COST_COMPUTED_V1,
            build_cost_computed_payload(record),
            occurred_at=record.computed_at,
        )
        return record

    def _order_adjustments(self, order: Order) -> Decimal:
        total = ZERO
        order_adjustment = self._adjustments.get(AdjustmentScope.ORDER, order.order_id)
        if order_adjustment is not None:
            total += order_adjustment.amount
        for line_item in order.line_items:
            line_adjustment = self._adjustments.get(
                AdjustmentScope.LINE_ITEM,
                line_item_ref(order.order_id, line_item.position),
            )
            if line_adjustment is not None:
                total += line_adjustment.amount
        return total

    def _handling_fee(self, order_id: str) -> Decimal:
        override = self._workflow.get_fee_override(order_id) if self._workflow else None
        if override is not None:
            logger.debug(f"Order {order_id}: handling fee overridden to {override.fee}")
        return effective_handling_fee(self._settings.handling_fee, override)

    # ══════════════════════════════════════════════════════════════
    # PERIOD COST
    # ══════════════════════════════════════════════════════════════

    def compute_period_cost(
        self,
        period: BillingPeriod,
        orders: Iterable[Order],
        period_adjustment: Optional[Decimal] = None,
    ) -> BillingRecord:
        included: List[Order] = []
        seen = set()
        for order in orders:
            if order.order_id in seen:
                logger.debug(f"Period {period.period_id}: duplicate order {order.order_id} skipped")
                continue
            seen.add(order.order_id)
            if self._settings.is_excluded_order(order.tags):
                logger.info(
                    f"Period {period.period_id}: order {order.order_id} excluded "
                    f"(billed through another channel)"
                )
                continue
            if order.created_at is not None and not period.contains(order.created_at):
                continue
            included.append(order)

        records = [self.compute_order_cost(order) for order in included]

        if period_adjustment is None:
            stored = self._adjustments.get(period.scope, period.period_id)
            adjustment = stored.amount if stored is not None else ZERO
        else:
            adjustment = to_decimal(period_adjustment, field_name="period_adjustment")

        record = BillingRecord(
            record_id=period.period_id,
            kind=RecordKind.PERIOD,
            total=sum((r.total for r in records), ZERO) + adjustment,
            computed_at=self._clock.now_utc(),
            handling_fee=sum((r.handling_fee for r in records), ZERO),
            adjustment_total=adjustment,
            unpriced=tuple(u for r in records for u in r.unpriced),
            stale_keys_detected=any(r.stale_keys_detected for r in records),
            order_ids=tuple(r.record_id for r in records),
        )
        self._billing.save(record)
        logger.info(
            f"Period {period.period_id} cost computed: {record.total} "
            f"over {len(records)} orders"
        )
        emit(
            self._event_registry,
            BILLING_PERIOD_COST_COMPUTED_V1,
            build_cost_computed_payload(record),
            occurred_at=record.computed_at,
        )
        return record

    # ══════════════════════════════════════════════════════════════
    # BALANCE ADJUSTMENTS
    # ══════════════════════════════════════════════════════════════

    def save_adjustment(
        self,
        scope: AdjustmentScope,
        scope_ref: str,
        amount,
        actor: str,
        note: str = "",
    ) -> BalanceAdjustment:
        """Create or replace the adjustment of (scope, scope_ref)."""
        try:
            value = to_decimal(amount, field_name="amount")
        except ValueError as exc:
            raise InvalidAdjustmentError(
                str(exc), getattr(scope, "value", str(scope)), scope_ref
            ) from exc
        adjustment = BalanceAdjustment(
            scope=scope,
            scope_ref=scope_ref,
            amount=value,
            actor=actor,
            note=note,
            updated_at=self._clock.now_utc(),
        )
        self._adjustments.save(adjustment)
        emit(
            self._event_registry,
            BILLING_ADJUSTMENT_SAVED_V1,
            build_adjustment_saved_payload(adjustment),
            occurred_at=adjustment.updated_at,
        )
        return adjustment

    def last_record(self, kind: RecordKind, record_id: str) -> Optional[BillingRecord]:
        return self._billing.get(kind, record_id)


# ══════════════════════════════════════════════════════════════
# INVOICING WORKFLOW
# ══════════════════════════════════════════════════════════════

class BillingWorkflowService:
    """
    Invoiced flags and notes per order, week or month, and per-order
    handling-fee overrides. Every write replaces the previous value
    of its target and is stamped with the actor and the Clock.
    """

    def __init__(
        self,
        *,
        workflow_store: BillingWorkflowStore,
        clock: Optional[Clock] = None,
        event_registry: Optional[SubscriberRegistry] = None,
    ):
        self._store = workflow_store
        self._clock = clock or get_default_clock()
        self._event_registry = event_registry

    def set_invoiced(
        self,
        scope: AdjustmentScope,
        scope_ref: str,
        invoiced: bool,
        actor: str,
    ) -> InvoiceStatus:
        status = InvoiceStatus(
            scope=scope,
            scope_ref=scope_ref,
            invoiced=invoiced,
            actor=actor,
            updated_at=self._clock.now_utc(),
        )
        self._store.save_invoice_status(status)
        logger.info(
            f"{status.scope.value} {status.scope_ref} marked "
            f"{'invoiced' if invoiced else 'not invoiced'} by {status.actor}"
        )
        emit(
            self._event_registry,
            BILLING_INVOICE_STATUS_SET_V1,
            build_invoice_status_payload(status),
            occurred_at=status.updated_at,
        )
        return status

    def is_invoiced(self, scope: AdjustmentScope, scope_ref: str) -> bool:
        status = self.invoice_status(scope, scope_ref)
        return status.invoiced if status is not None else False

    def invoice_status(self, scope: AdjustmentScope, scope_ref: str) -> Optional[InvoiceStatus]:
        return self._store.get_invoice_status(scope, normalize_target(scope, scope_ref))

    def save_note(
        self,
        scope: AdjustmentScope,
        scope_ref: str,
        note: str,
        actor: str,
    ) -> BillingNote:
        """Create or replace the note; an empty note clears it."""
        saved = BillingNote(
            scope=scope,
            scope_ref=scope_ref,
            note=note,
            actor=actor,
            updated_at=self._clock.now_utc(),
        )
        self._store.save_note(saved)
        emit(
            self._event_registry,
            BILLING_NOTE_SAVED_V1,
            build_note_saved_payload(saved),
            occurred_at=saved.updated_at,
        )
        return saved

    def note(self, scope: AdjustmentScope, scope_ref: str) -> Optional[BillingNote]:
        return self._store.get_note(scope, normalize_target(scope, scope_ref))

    def set_handling_fee(self, order_id: str, fee, actor: str) -> HandlingFeeOverride:
        try:
            value = to_decimal(fee, field_name="fee")
        except ValueError as exc:
            raise InvalidBillingEntryError(
                str(exc), AdjustmentScope.ORDER.value, str(order_id)
            ) from exc
        override = HandlingFeeOverride(
            order_id=order_id,
            fee=value,
            actor=actor,
            updated_at=self._clock.now_utc(),
        )
        self._store.save_fee_override(override)
        logger.info(
            f"Order {override.order_id}: handling fee set to {override.fee} "
            f"by {override.actor}"
        )
        emit(
            self._event_registry,
            BILLING_HANDLING_FEE_OVERRIDDEN_V1,
            build_fee_overridden_payload(
                override.order_id, override.fee, override.actor, override.updated_at
            ),
            occurred_at=override.updated_at,
        )
        return override

    def clear_handling_fee(self, order_id: str, actor: str) -> bool:
        """Drop the override so the shop-wide fee applies again."""
        oid = normalize_order_id(order_id)
        removed = self._store.delete_fee_override(oid)
        if removed:
            now = self._clock.now_utc()
            logger.info(f"Order {oid}: handling fee override cleared by {actor}")
            emit(
                self._event_registry,
                BILLING_HANDLING_FEE_OVERRIDDEN_V1,
                build_fee_overridden_payload(oid, None, actor, now),
                occurred_at=now,
            )
        return removed

    def handling_fee_override(self, order_id: str) -> Optional[HandlingFeeOverride]:
        return self._store.get_fee_override(normalize_order_id(order_id))

__all__ = [
    "BillingWorkflowService",
    "CostReconciliationService",
]
