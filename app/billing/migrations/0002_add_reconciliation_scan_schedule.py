"""
Add celery-beat schedule for the nightly reconciliation scan.

This migration creates the periodic task schedule for the
scan_unlinked_subscriptions task, which runs every night at 03:00 UTC
to list Stripe subscriptions that are not correctly linked to students.
"""

from django.db import migrations

TASK_NAME = "Scan Unlinked Stripe Subscriptions"


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for the reconciliation scan."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every day at 03:00 UTC
    schedule, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
        timezone="UTC",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "billing.tasks.scan_unlinked_subscriptions",
            "crontab": schedule,
            "enabled": True,
            "description": (
                "Lists active Stripe subscriptions that have no correct local "
                "link and logs them for operator review. Read-only."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
