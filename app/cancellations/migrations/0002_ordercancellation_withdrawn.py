import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("cancellations", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="ordercancellation",
            name="withdrawn_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AlterField(
            model_name="ordercancellation",
            name="status",
            field=django_fsm.FSMField(
                choices=[
                    ("pending", "Pending"),
                    ("approved", "Approved"),
                    ("rejected", "Rejected"),
                    ("completed", "Completed"),
                    ("withdrawn", "Withdrawn"),
                ],
                db_index=True,
                default="pending",
                max_length=50,
            ),
        ),
    ]
