"""Congregation management app for Grace CRM.

This package holds the models, JSON views, services and management
commands behind the church CRM: people and their giving, attendance,
tasks, prayer requests, calendar events with registrations, reminders and
outbound text messages.

Most of the computation lives in ``congregation.services``.  Recurring
events are expanded on demand, dashboard figures are recomputed on every
request and nothing derived is stored.
"""
