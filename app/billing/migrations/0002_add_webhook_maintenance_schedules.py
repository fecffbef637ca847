"""
Add celery-beat schedules for webhook ledger maintenance.

Creates periodic tasks that:
- re-queue failed webhook events every 5 minutes
- reset events stuck in processing every 15 minutes
- delete processed events older than 90 days once a day
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Retry Failed Billing Webhooks",
        "task": "billing.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed webhook events under the retry cap.",
    },
    {
        "name": "Reset Stuck Billing Webhooks",
        "task": "billing.tasks.reset_stuck_webhooks",
        "every": 15,
        "description": "Marks events stuck in processing as failed so they are retried.",
    },
    {
        "name": "Clean Up Old Billing Webhooks",
        "task": "billing.tasks.cleanup_old_webhooks",
        "every": 1440,
        "description": "Deletes processed webhook events older than 90 days.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for webhook maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
