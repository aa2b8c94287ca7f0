#!/usr/bin/env python
"""
Entry point for the Grace CRM Django project.

Sets the default settings module and hands the command line over to
``django.core.management.execute_from_command_line`` so that ``migrate``,
``runserver``, ``test`` and ``dispatch_reminders`` can be run from here.
"""
import os
import sys


def main() -> None:
    """Run administrative tasks."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'gracecrm.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:  # pragma: no cover
        raise ImportError(
            "Couldn't import Django. Is it installed and available on your "
            "PYTHONPATH? Did you forget to activate a virtual environment?"
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
