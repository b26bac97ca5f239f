"""
Printshop Stores — ORM Models
===============================
One table per document kind of the realtime store:

    checklist entries   unit_key → {checked, actor, updated_at, order_id}
    progress counters   order_id → {checked_count, total_count}
    billing records     (kind, record_id) → derived cost breakdown
    adjustments         (scope, scope_ref) → signed amount
    invoice statuses    (scope, scope_ref) → invoiced flag
    billing notes       (scope, scope_ref) → note text
    fee overrides       order_id → handling fee
    price rules         + metafield / option modifiers
"""

from __future__ import annotations

from django.db import models

from core.config import AMOUNT_DECIMAL_PLACES, AMOUNT_MAX_DIGITS


class ChecklistEntryRecord(models.Model):
    unit_key = models.CharField(max_length=512, primary_key=True)
    order_id = models.CharField(max_length=64, db_index=True)
    checked = models.BooleanField(default=False)
    actor = models.CharField(max_length=255)
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "printshop_checklist_entries"
        ordering = ["unit_key"]

    def __str__(self) -> str:
        return f"{self.unit_key} ({'checked' if self.checked else 'unchecked'})"


class ProgressCounterRecord(models.Model):
    order_id = models.CharField(max_length=64, primary_key=True)
    checked_count = models.PositiveIntegerField(default=0)
    total_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "printshop_progress_counters"

    def __str__(self) -> str:
        return f"{self.order_id}: {self.checked_count}/{self.total_count}"


class BillingRecordKind(models.TextChoices):
    ORDER = "ORDER", "Order"
    PERIOD = "PERIOD", "Period"


class BillingRecordRow(models.Model):
    kind = models.CharField(max_length=10, choices=BillingRecordKind.choices)
    record_id = models.CharField(max_length=64)
    total = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    computed_at = models.DateTimeField()
    breakdown = models.JSONField(default=dict)

    class Meta:
        db_table = "printshop_billing_records"
        constraints = [
            models.UniqueConstraint(
                fields=["kind", "record_id"],
                name="uq_billing_record_kind_id",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.record_id}: {self.total}"


class AdjustmentScopeChoice(models.TextChoices):
    ORDER = "ORDER", "Order"
    LINE_ITEM = "LINE_ITEM", "Line item"
    WEEK = "WEEK", "Week"
    MONTH = "MONTH", "Month"


class BalanceAdjustmentRecord(models.Model):
    scope = models.CharField(max_length=20, choices=AdjustmentScopeChoice.choices)
    scope_ref = models.CharField(max_length=128)
    amount = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    actor = models.CharField(max_length=255, blank=True, default="")
    note = models.TextField(blank=True, default="")
    updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "printshop_balance_adjustments"
        constraints = [
            models.UniqueConstraint(
                fields=["scope", "scope_ref"],
                name="uq_adjustment_scope_ref",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.scope} {self.scope_ref}: {self.amount}"


class PriceRuleRecord(models.Model):
    sku = models.CharField(max_length=255, db_index=True)
    color = models.CharField(max_length=255, null=True, blank=True)
    base_price = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    priority = models.IntegerField(default=100)
    is_active = models.BooleanField(default=True)
    description = models.CharField(max_length=255, blank=True, default="")
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "printshop_price_rules"
        ordering = ["position", "id"]

    def __str__(self) -> str:
        return f"{self.sku} / {self.color or '*'}: {self.base_price}"


class MetafieldModifierRecord(models.Model):
    rule = models.ForeignKey(
        PriceRuleRecord,
        on_delete=models.CASCADE,
        related_name="metafield_modifiers",
    )
    namespace = models.CharField(max_length=255)
    key = models.CharField(max_length=255)
    value = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)

    class Meta:
        db_table = "printshop_price_metafield_modifiers"
        ordering = ["id"]


class OptionModifierRecord(models.Model):
    rule = models.ForeignKey(
        PriceRuleRecord,
        on_delete=models.CASCADE,
        related_name="option_modifiers",
    )
    option_name = models.CharField(max_length=255, blank=True, default="")
    option_value = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)

    class Meta:
        db_table = "printshop_price_option_modifiers"
        ordering = ["id"]


class WorkflowScopeChoice(models.TextChoices):
    ORDER = "ORDER", "Order"
    WEEK = "WEEK", "Week"
    MONTH = "MONTH", "Month"


class InvoiceStatusRecord(models.Model):
    scope = models.CharField(max_length=10, choices=WorkflowScopeChoice.choices)
    scope_ref = models.CharField(max_length=64)
    invoiced = models.BooleanField(default=False)
    actor = models.CharField(max_length=255)
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "printshop_invoice_statuses"
        constraints = [
            models.UniqueConstraint(
                fields=["scope", "scope_ref"],
                name="uq_invoice_status_scope_ref",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.scope} {self.scope_ref}: {'invoiced' if self.invoiced else 'open'}"


class BillingNoteRecord(models.Model):
    scope = models.CharField(max_length=10, choices=WorkflowScopeChoice.choices)
    scope_ref = models.CharField(max_length=64)
    note = models.TextField()
    actor = models.CharField(max_length=255)
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "printshop_billing_notes"
        constraints = [
            models.UniqueConstraint(
                fields=["scope", "scope_ref"],
                name="uq_billing_note_scope_ref",
            ),
        ]


class HandlingFeeOverrideRecord(models.Model):
    order_id = models.CharField(max_length=64, primary_key=True)
    fee = models.DecimalField(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    actor = models.CharField(max_length=255)
    updated_at = models.DateTimeField()

    class Meta:
        db_table = "printshop_handling_fee_overrides"

    def __str__(self) -> str:
        return f"{self.order_id}: {self.fee}"
