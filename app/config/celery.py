"""
Celery configuration for the billing service.

Celery runs the webhook ledger maintenance work:
- replaying a stored webhook event on operator request
- periodically retrying failed webhook events
- releasing events left stuck in "processing" by a crashed worker

Redis is both the message broker and result backend. Periodic schedules live
in the database (django_celery_beat) and are created by billing migrations.

Usage:
    from billing.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
