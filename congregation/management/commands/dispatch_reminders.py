"""Send the reminders whose time has come.

Run this from cron (every 15 minutes is plenty).  Reminder rules are read
from the preference store, the reminders they imply are rebuilt from the
database and every reminder that is due and has not been sent before is
delivered:

* ``email`` and ``both`` channels create an in-app notification for every
  active staff account.
* ``sms`` and ``both`` channels text the person the reminder is about
  (recipients ``person``) or the rule's custom numbers (``custom``).

Each reminder key is recorded in ``SentReminder`` so it goes out once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Tuple

from django.core.management.base import BaseCommand, CommandError
from django.db import IntegrityError, transaction
from django.utils import timezone

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Deliver due reminders by SMS and in-app notification."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the due reminders without sending or recording them.",
        )
        parser.add_argument(
            "--now",
            help="Pretend the current time is this ISO timestamp.",
        )

    def _resolve_now(self, value) -> datetime:
        if not value:
            return timezone.now()
        try:
            moment = datetime.fromisoformat(value)
        except ValueError as exc:
            raise CommandError(f"Invalid --now value: {value!r}") from exc
        if timezone.is_naive(moment):
            moment = timezone.make_aware(moment)
        return moment

    def _sms_numbers(self, rule, reminder) -> List[str]:
        if rule is None or rule.recipients == 'staff':
            return []
        if rule.recipients == 'custom':
            return list(rule.custom_recipients)
        return [reminder.recipient_phone] if reminder.recipient_phone else []

    def _send_sms(self, client, numbers, text) -> Tuple[str, str]:
        from congregation.services.sms import SmsError

        if not numbers:
            return 'skipped', 'No phone number to text.'
        if not client.is_configured:
            return 'skipped', 'SMS service not configured.'
        problems: List[str] = []
        for number in numbers:
            try:
                result = client.send(number, text)
            except SmsError as exc:
                problems.append(f"{number}: {exc}")
                continue
            if not result.success:
                problems.append(f"{number}: {result.error}")
        if problems:
            return 'failed', '; '.join(problems)
        return 'sent', f"Texted {len(numbers)} number(s)."

    def handle(self, *args, **options):
        from congregation.models import SentReminder
        from congregation.services.notifications import notify_reminder, staff_recipients
        from congregation.services.preferences import ModelPreferenceStore, ReminderRuleRepository
        from congregation.services.reminders import due_reminders, load_reminders
        from congregation.services.sms import TwilioClient

        now = self._resolve_now(options.get("now"))
        rules = {rule.id: rule for rule in ReminderRuleRepository(ModelPreferenceStore()).list()}
        due = due_reminders(load_reminders(rules.values(), now), now)
        already_sent = set(
            SentReminder.objects.filter(reminder_key__in=[r.key for r in due]).values_list('reminder_key', flat=True)
        )
        due = [reminder for reminder in due if reminder.key not in already_sent]

        if not due:
            self.stdout.write(self.style.NOTICE("No reminders are due."))
            return

        if options["dry_run"]:
            for reminder in due:
                self.stdout.write(f"{reminder.key}\t{reminder.channel}\t{reminder.subject}")
            self.stdout.write(self.style.WARNING(f"Dry run: {len(due)} reminder(s) not sent."))
            return

        client = TwilioClient.from_settings()
        staff = staff_recipients()
        sent = 0
        for reminder in due:
            text = reminder.message or reminder.subject
            outcomes: List[Tuple[str, str]] = []
            if reminder.channel in ('email', 'both'):
                notices = notify_reminder(
                    staff,
                    message=text,
                    reminder_key=reminder.key,
                    reminder_type=reminder.type,
                    scheduled_for=reminder.scheduled_for,
                )
                outcomes.append(('sent', f"Notified {len(notices)} staff member(s).") if notices else ('skipped', 'No staff to notify.'))
            if reminder.channel in ('sms', 'both'):
                outcomes.append(self._send_sms(client, self._sms_numbers(rules.get(reminder.rule_id), reminder), text))

            statuses = {status for status, _ in outcomes}
            status = 'sent' if 'sent' in statuses else ('failed' if 'failed' in statuses else 'skipped')
            try:
                with transaction.atomic():
                    SentReminder.objects.create(
                        reminder_key=reminder.key,
                        channel=reminder.channel,
                        status=status,
                        detail=' '.join(detail for _, detail in outcomes),
                    )
            except IntegrityError:
                logger.warning("Reminder %s was recorded by another run", reminder.key)
                continue
            if status == 'sent':
                sent += 1
            logger.info("Reminder %s (%s): %s", reminder.key, reminder.channel, status)

        self.stdout.write(self.style.SUCCESS(f"Dispatched {sent} of {len(due)} due reminder(s)."))
