import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ChecklistEntryRecord",
            fields=[
                ("unit_key", models.CharField(max_length=512, primary_key=True, serialize=False)),
                ("order_id", models.CharField(db_index=True, max_length=64)),
                ("checked", models.BooleanField(default=False)),
                ("actor", models.CharField(max_length=255)),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "db_table": "printshop_checklist_entries",
                "ordering": ["unit_key"],
            },
        ),
        migrations.CreateModel(
            name="ProgressCounterRecord",
            fields=[
                ("order_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("checked_count", models.PositiveIntegerField(default=0)),
                ("total_count", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "printshop_progress_counters",
            },
        ),
        migrations.CreateModel(
            name="BillingRecordRow",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[("ORDER", "Order"), ("PERIOD", "Period")],
                        max_length=10,
                    ),
                ),
                ("record_id", models.CharField(max_length=64)),
                ("total", models.DecimalField(decimal_places=6, max_digits=18)),
                ("computed_at", models.DateTimeField()),
                ("breakdown", models.JSONField(default=dict)),
            ],
            options={
                "db_table": "printshop_billing_records",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("kind", "record_id"),
                        name="uq_billing_record_kind_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BalanceAdjustmentRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "scope",
                    models.CharField(
                        choices=[
                            ("ORDER", "Order"),
                            ("LINE_ITEM", "Line item"),
                            ("WEEK", "Week"),
                            ("MONTH", "Month"),
                        ],
                        max_length=20,
                    ),
                ),
                ("scope_ref", models.CharField(max_length=128)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=18)),
                ("actor", models.CharField(blank=True, default="", max_length=255)),
                ("note", models.TextField(blank=True, default="")),
                ("updated_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "printshop_balance_adjustments",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("scope", "scope_ref"),
                        name="uq_adjustment_scope_ref",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PriceRuleRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(db_index=True, max_length=255)),
                ("color", models.CharField(blank=True, max_length=255, null=True)),
                ("base_price", models.DecimalField(decimal_places=6, max_digits=18)),
                ("priority", models.IntegerField(default=100)),
                ("is_active", models.BooleanField(default=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("position", models.PositiveIntegerField(default=0)),
            ],
            options={
                "db_table": "printshop_price_rules",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="MetafieldModifierRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("namespace", models.CharField(max_length=255)),
                ("key", models.CharField(max_length=255)),
                ("value", models.CharField(max_length=255)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=18)),
                (
                    "rule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="metafield_modifiers",
                        to="printshop_store.pricerulerecord",
                    ),
                ),
            ],
            options={
                "db_table": "printshop_price_metafield_modifiers",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="OptionModifierRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("option_name", models.CharField(blank=True, default="", max_length=255)),
                ("option_value", models.CharField(max_length=255)),
                ("amount", models.DecimalField(decimal_places=6, max_digits=18)),
                (
                    "rule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="option_modifiers",
                        to="printshop_store.pricerulerecord",
                    ),
                ),
            ],
            options={
                "db_table": "printshop_price_option_modifiers",
                "ordering": ["id"],
            },
        ),
    ]
