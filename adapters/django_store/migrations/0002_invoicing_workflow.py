from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("printshop_store", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="InvoiceStatusRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "scope",
                    models.CharField(
                        choices=[("ORDER", "Order"), ("WEEK", "Week"), ("MONTH", "Month")],
                        max_length=10,
                    ),
                ),
                ("scope_ref", models.CharField(max_length=64)),
                ("invoiced", models.BooleanField(default=False)),
                ("actor", models.CharField(max_length=255)),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "db_table": "printshop_invoice_statuses",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("scope", "scope_ref"),
                        name="uq_invoice_status_scope_ref",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillingNoteRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "scope",
                    models.CharField(
                        choices=[("ORDER", "Order"), ("WEEK", "Week"), ("MONTH", "Month")],
                        max_length=10,
                    ),
                ),
                ("scope_ref", models.CharField(max_length=64)),
                ("note", models.TextField()),
                ("actor", models.CharField(max_length=255)),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "db_table": "printshop_billing_notes",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("scope", "scope_ref"),
                        name="uq_billing_note_scope_ref",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="HandlingFeeOverrideRecord",
            fields=[
                ("order_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("fee", models.DecimalField(decimal_places=6, max_digits=18)),
                ("actor", models.CharField(max_length=255)),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "db_table": "printshop_handling_fee_overrides",
            },
        ),
    ]
