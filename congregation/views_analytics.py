"""Views for the analytics dashboard and the giving reports.

All figures are recomputed from the database on every request through
:mod:`congregation.services.analytics`; the reporting period comes from
the ``period`` query parameter (``7d``, ``30d``, ``90d`` or ``all``) and
falls back to ``DEFAULT_ANALYTICS_PERIOD``.
"""

from __future__ import annotations

from typing import Any, Dict

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import HttpRequest, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from .models import Giving, Person
from .services.aggregation import count_by, sum_by
from .services.analytics import build_dashboard_metrics, build_donor_overview, build_donor_stats
from .services.windows import Period, filter_by_period

GIVING_GROUPS = {
    'fund': Giving.Fund.choices,
    'method': Giving.Method.choices,
}


def _requested_period(request: HttpRequest) -> Period:
    default = Period.parse(getattr(settings, 'DEFAULT_ANALYTICS_PERIOD', '30d'))
    return Period.parse(request.GET.get('period'), default=default)


@login_required
@require_http_methods(["GET"])
def dashboard(request: HttpRequest) -> JsonResponse:
    period = _requested_period(request)
    metrics = build_dashboard_metrics(period, timezone.now())
    metrics['periods'] = Period.choices()
    return JsonResponse(metrics)


@login_required
@require_http_methods(["GET"])
def giving_summary(request: HttpRequest) -> JsonResponse:
    """Giving in the period bucketed by fund or by method."""

    period = _requested_period(request)
    group = request.GET.get('group') or 'fund'
    if group not in GIVING_GROUPS:
        return JsonResponse({'ok': False, 'message': 'Group must be fund or method.'}, status=400)

    gifts = filter_by_period(Giving.objects.all(), period, 'date', timezone.now())
    choices = GIVING_GROUPS[group]
    amounts = sum_by(gifts, group, seed=[key for key, _ in choices])
    amounts.labels = {key: str(label) for key, label in choices}
    counts = count_by(gifts, group)
    rows = amounts.sorted_desc().as_rows()
    for row in rows:
        row['value'] = float(row['value'])
        row['count'] = counts.values.get(row['key'], 0)

    payload: Dict[str, Any] = {
        'period': period.value,
        'group': group,
        'rows': rows,
        'total': float(amounts.total),
        'count': len(gifts),
    }
    return JsonResponse(payload)


@login_required
@require_http_methods(["GET"])
def giving_donors(request: HttpRequest) -> JsonResponse:
    return JsonResponse(build_donor_overview())


@login_required
@require_http_methods(["GET"])
def giving_donor_detail(request: HttpRequest, person_id: int) -> JsonResponse:
    person = get_object_or_404(Person, pk=person_id)
    stats = build_donor_stats(person)
    if stats is None:
        return JsonResponse({'ok': False, 'message': 'No giving recorded for this person.'}, status=404)
    return JsonResponse(stats)
