"""
Due calculation — decides whether a rule fires now and when it fires next.

Usage:
    decision = evaluate(rule, last_fired_at=record.last_fired_at, now=datetime.now())
    if decision.is_due:
        ...

The check is tolerant of the polling granularity: a rule becomes due at
send_time on a matching day and stays due until it has fired for that
period, so a poll landing at 09:07 still fires a 09:00 rule.

Cycle origin for interval kinds (daily/weekly/monthly/yearly) is anchor_date,
falling back to the date of the last fire for rules that have none. Once
the anchor is pinned, off-cycle manual sends only count towards "already
fired today"; they never move the cycle. A rule anchored on the 31st lands
on the last day of shorter months without drifting.
"""

from __future__ import annotations

import calendar
import datetime
from dataclasses import dataclass

from notifier.core.errors import RuleValidationError
from notifier.scheduler.rule import RecurrenceKind, RecurrenceRule

ONE_DAY = datetime.timedelta(days=1)


@dataclass(frozen=True)
class DueDecision:
    """Result of evaluating one rule at one instant."""

    is_due: bool
    next_anchor: datetime.datetime | None = None
    expired: bool = False       # rule can never fire again (past once-date, end_date passed)
    error: str | None = None    # set when the rule is malformed


def evaluate(
    rule: RecurrenceRule,
    last_fired_at: datetime.datetime | None,
    now: datetime.datetime,
) -> DueDecision:
    """
    Decide whether the rule is due at `now`.

    Never raises for a malformed rule: the decision comes back with
    is_due=False and `error` set, so one bad record cannot stop a tick.
    """
    try:
        rule.validate()
    except RuleValidationError as e:
        return DueDecision(is_due=False, error=e.message)

    today = now.date()
    if rule.end_date is not None and today > rule.end_date:
        return DueDecision(is_due=False, expired=True)

    if rule.kind is RecurrenceKind.ONCE:
        return _evaluate_once(rule, last_fired_at, now)

    time_reached = rule.send_time is None or now.time() >= rule.send_time
    origin = _origin(rule, last_fired_at)
    open_today = _matches(rule, origin, today) and not fired_in_period(rule, last_fired_at, today)
    is_due = open_today and time_reached

    if open_today and not time_reached:
        next_anchor = _at(today, rule, now)
    else:
        next_origin = origin or today
        day = next_matching_date(rule, next_origin, today + ONE_DAY)
        next_anchor = _at(day, rule, now) if day else None

    return DueDecision(is_due=is_due, next_anchor=_clip(next_anchor, rule))


def fired_in_period(
    rule: RecurrenceRule,
    last_fired_at: datetime.datetime | None,
    day: datetime.date,
) -> bool:
    """Whether the rule already fired in the period containing `day`."""
    if last_fired_at is None:
        return False
    if rule.kind is RecurrenceKind.ONCE:
        return True
    if rule.kind is RecurrenceKind.MONTHDAY:
        return (last_fired_at.year, last_fired_at.month) == (day.year, day.month)
    return last_fired_at.date() == day


def next_matching_date(
    rule: RecurrenceRule,
    origin: datetime.date | None,
    start: datetime.date,
) -> datetime.date | None:
    """First date >= start (and >= anchor_date) on which the rule matches."""
    if rule.anchor_date is not None and start < rule.anchor_date:
        start = rule.anchor_date
    origin = origin or start
    kind = rule.kind

    if kind in (RecurrenceKind.DAILY, RecurrenceKind.WEEKLY):
        step = rule.interval * (7 if kind is RecurrenceKind.WEEKLY else 1)
        if start <= origin:
            return origin
        blocks = -(-(start - origin).days // step)  # ceil
        return origin + datetime.timedelta(days=blocks * step)

    if kind is RecurrenceKind.MONTHLY:
        target = rule.anchor_date or origin
        k = _round_up(max(_months_between(origin, start), 0), rule.interval)
        while True:
            year, month = divmod(origin.year * 12 + origin.month - 1 + k, 12)
            candidate = clamp_date(year, month + 1, target.day)
            if candidate >= start:
                return candidate
            k += rule.interval

    if kind is RecurrenceKind.YEARLY:
        target = rule.anchor_date or origin
        k = _round_up(max(start.year - origin.year, 0), rule.interval)
        while True:
            candidate = clamp_date(origin.year + k, target.month, target.day)
            if candidate >= start:
                return candidate
            k += rule.interval

    if kind is RecurrenceKind.WEEKDAYS:
        for offset in range(7):
            day = start + datetime.timedelta(days=offset)
            if portal_weekday(day) in rule.week_days:
                return day
        return None

    if kind is RecurrenceKind.MONTHDAY:
        for offset in range(3):
            year, month = divmod(start.year * 12 + start.month - 1 + offset, 12)
            candidate = clamp_date(year, month + 1, rule.month_day or 1)
            if candidate >= start:
                return candidate
        return None

    return None


# ── Helpers ───────────────────────────────────────────────────────────────────


def clamp_date(year: int, month: int, day: int) -> datetime.date:
    """Date in the given month, with `day` clamped to the month's last day."""
    return datetime.date(year, month, min(day, calendar.monthrange(year, month)[1]))


def portal_weekday(day: datetime.date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def _evaluate_once(
    rule: RecurrenceRule,
    last_fired_at: datetime.datetime | None,
    now: datetime.datetime,
) -> DueDecision:
    if last_fired_at is not None:
        return DueDecision(is_due=False)
    today = now.date()
    target = rule.anchor_date
    if target is not None and today > target:
        return DueDecision(is_due=False, expired=True)
    if target is not None and today < target:
        return DueDecision(is_due=False, next_anchor=_clip(_at(target, rule, now), rule))
    if rule.send_time is not None and now.time() < rule.send_time:
        return DueDecision(is_due=False, next_anchor=_clip(_at(today, rule, now), rule))
    return DueDecision(is_due=True)


def _origin(
    rule: RecurrenceRule, last_fired_at: datetime.datetime | None
) -> datetime.date | None:
    if rule.anchor_date is not None:
        return rule.anchor_date
    return last_fired_at.date() if last_fired_at is not None else None


def _matches(rule: RecurrenceRule, origin: datetime.date | None, day: datetime.date) -> bool:
    if rule.anchor_date is not None and day < rule.anchor_date:
        return False
    kind = rule.kind

    if kind is RecurrenceKind.WEEKDAYS:
        return portal_weekday(day) in rule.week_days
    if kind is RecurrenceKind.MONTHDAY:
        return day == clamp_date(day.year, day.month, rule.month_day or 1)

    # Interval kinds without an origin fire on the first eligible day
    if origin is None:
        return True
    if kind in (RecurrenceKind.DAILY, RecurrenceKind.WEEKLY):
        step = rule.interval * (7 if kind is RecurrenceKind.WEEKLY else 1)
        delta = (day - origin).days
        return delta >= 0 and delta % step == 0
    if kind is RecurrenceKind.MONTHLY:
        months = _months_between(origin, day)
        target = rule.anchor_date or origin
        return (
            months >= 0
            and months % rule.interval == 0
            and day == clamp_date(day.year, day.month, target.day)
        )
    if kind is RecurrenceKind.YEARLY:
        years = day.year - origin.year
        target = rule.anchor_date or origin
        return (
            years >= 0
            and years % rule.interval == 0
            and day == clamp_date(day.year, target.month, target.day)
        )
    return False


def _months_between(a: datetime.date, b: datetime.date) -> int:
    return (b.year - a.year) * 12 + (b.month - a.month)


def _round_up(value: int, step: int) -> int:
    return -(-value // step) * step


def _at(day: datetime.date, rule: RecurrenceRule, now: datetime.datetime) -> datetime.datetime:
    return datetime.datetime.combine(day, rule.send_time or datetime.time.min, tzinfo=now.tzinfo)


def _clip(moment: datetime.datetime | None, rule: RecurrenceRule) -> datetime.datetime | None:
    if moment is None or (rule.end_date is not None and moment.date() > rule.end_date):
        return None
    return moment
