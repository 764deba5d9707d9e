"""
Capacity and utilization metrics.

All functions are pure: they take initiatives and an AppConfig and return
numbers, never touching the session. Percentages are returned raw and
signed; ``display_percentage`` clamps for bars only, and threshold checks
(over-capacity warning) always use the raw value.

Capacity figures are in staff weeks, like effort:

    effective capacity = max(0, base capacity - adjustment - buffer)

A positive adjustment deducts capacity, a negative one adds it.
Reports also carry the same figures in days and hours, converted with the
deployment's working days per week.
"""

import logging

from workplan.models.initiative import InitiativeType, Status, WorkType
from workplan.services import effort

logger = logging.getLogger(__name__)

OVER_CAPACITY_THRESHOLD = 100
HIGH_UTILIZATION_THRESHOLD = 80


def _is_live(initiative) -> bool:
    return initiative.status != Status.DELETED.value and initiative.deleted_at is None


def _live(initiatives):
    return [i for i in initiatives or [] if _is_live(i)]


def _ratio_pct(numerator, denominator) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator * 100


def effective_capacity(owner_id, config) -> float:
    base = config.team_capacities.get(owner_id, 0) or 0
    adjustment = config.team_capacity_adjustments.get(owner_id, 0) or 0
    buffer = config.team_buffers.get(owner_id, 0) or 0
    return max(0.0, float(base - adjustment - buffer))


def total_capacity(owner_ids, config) -> float:
    return sum(effective_capacity(o, config) for o in owner_ids or [])


def owned_by(owner_ids, initiatives):
    owners = set(owner_ids or [])
    return [i for i in _live(initiatives) if i.owner_id in owners]


def utilization(owner_ids, initiatives, config) -> float:
    """Σ estimated effort of the owners' live initiatives / Σ effective capacity × 100.

    0 when the owners have no effective capacity at all.
    """
    capacity = total_capacity(owner_ids, config)
    if capacity <= 0:
        return 0.0
    load = sum(i.estimated_effort or 0 for i in owned_by(owner_ids, initiatives))
    return load / capacity * 100


def efficiency(initiatives) -> float:
    """Actual / estimated effort over live initiatives, as a percentage."""
    live = _live(initiatives)
    estimated = sum(i.estimated_effort or 0 for i in live)
    actual = sum(i.actual_effort or 0 for i in live)
    return _ratio_pct(actual, estimated)


def unplanned_ratio(initiatives) -> float:
    """Share of estimated effort that is Unplanned Work, as a percentage."""
    live = _live(initiatives)
    estimated = sum(i.estimated_effort or 0 for i in live)
    unplanned = sum(i.estimated_effort or 0 for i in live if i.work_type == WorkType.UNPLANNED.value)
    return _ratio_pct(unplanned, estimated)


def buffer_total(owner_ids, config) -> float:
    return float(sum(config.team_buffers.get(o, 0) or 0 for o in owner_ids or []))


def unplanned_actuals(initiatives) -> float:
    return float(sum(
        i.actual_effort or 0 for i in _live(initiatives) if i.work_type == WorkType.UNPLANNED.value
    ))


def bau_buffer_health(owner_ids, initiatives, config) -> float:
    """(buffer total - unplanned actuals) / buffer total, as a percentage.

    Goes negative once unplanned work has eaten more than the reserved
    buffer; 0 when no buffer is reserved.
    """
    total = buffer_total(owner_ids, config)
    if total <= 0:
        return 0.0
    return (total - unplanned_actuals(owned_by(owner_ids, initiatives))) / total * 100


def display_percentage(value) -> float:
    """Clamp a percentage to [0, 100] for display."""
    return min(100.0, max(0.0, float(value or 0)))


def _metric(value) -> dict:
    return {"value": round(value, 2), "display": round(display_percentage(value), 2)}


def _in_units(figures, days_per_week) -> dict:
    return {
        "days": {k: round(effort.weeks_to_days(v, days_per_week), 1) for k, v in figures.items()},
        "hours": {k: round(effort.weeks_to_hours(v, days_per_week), 1) for k, v in figures.items()},
    }


def owner_report(owner_id, initiatives, config, days_per_week=effort.DAYS_PER_WEEK) -> dict:
    mine = owned_by([owner_id], initiatives)
    load = sum(i.estimated_effort or 0 for i in mine)
    util = utilization([owner_id], initiatives, config)
    report = {
        "owner_id": owner_id,
        "base_capacity": float(config.team_capacities.get(owner_id, 0) or 0),
        "adjustment": float(config.team_capacity_adjustments.get(owner_id, 0) or 0),
        "buffer": float(config.team_buffers.get(owner_id, 0) or 0),
        "effective_capacity": effective_capacity(owner_id, config),
        "load": float(load),
        "actual": float(sum(i.actual_effort or 0 for i in mine)),
        "initiative_count": len(mine),
        "utilization": _metric(util),
        "over_capacity": util > OVER_CAPACITY_THRESHOLD,
        "high_utilization": util > HIGH_UTILIZATION_THRESHOLD,
    }
    report.update(_in_units(
        {k: report[k] for k in ("effective_capacity", "load", "actual")}, days_per_week
    ))
    return report


def team_metrics(owner_ids, initiatives, config, days_per_week=effort.DAYS_PER_WEEK) -> dict:
    """Aggregate metrics for a set of owners (the metrics dashboard payload)."""
    owner_ids = list(owner_ids or [])
    scoped = owned_by(owner_ids, initiatives)
    util = utilization(owner_ids, initiatives, config)
    bau_items = [i for i in scoped if i.initiative_type == InitiativeType.BAU.value]

    status_counts = {s.value: 0 for s in Status if s != Status.DELETED}
    for item in scoped:
        if item.status in status_counts:
            status_counts[item.status] += 1

    metrics = {
        "owners": [owner_report(o, initiatives, config, days_per_week) for o in owner_ids],
        "total_capacity": total_capacity(owner_ids, config),
        "total_estimated": float(sum(i.estimated_effort or 0 for i in scoped)),
        "total_actual": float(sum(i.actual_effort or 0 for i in scoped)),
        "utilization": _metric(util),
        "over_capacity": util > OVER_CAPACITY_THRESHOLD,
        "efficiency": _metric(efficiency(scoped)),
        "unplanned_ratio": _metric(unplanned_ratio(scoped)),
        "bau_buffer_total": buffer_total(owner_ids, config),
        "unplanned_actuals": unplanned_actuals(scoped),
        "bau_initiative_estimated": float(sum(i.estimated_effort or 0 for i in bau_items)),
        "bau_initiative_actual": float(sum(i.actual_effort or 0 for i in bau_items)),
        "bau_buffer_health": _metric(bau_buffer_health(owner_ids, initiatives, config)),
        "status_breakdown": status_counts,
        "at_risk_count": status_counts[Status.AT_RISK.value],
        "total_count": len(scoped),
    }
    metrics.update(_in_units(
        {k: metrics[k] for k in ("total_capacity", "total_estimated", "total_actual")}, days_per_week
    ))
    return metrics
