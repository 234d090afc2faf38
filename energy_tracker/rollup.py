# rollup.py
"""Week and month rollups of daily consumption records.

Weeks follow ISO-8601 (Monday start, week 1 contains the first Thursday),
so late-December days can belong to week 1 of the next year and early-January
days to week 52/53 of the previous one; the key uses the ISO year.
Only periods present in the input are returned; gaps are not zero-filled.
"""
import calendar
from datetime import date, timedelta
from typing import Iterable

from energy_tracker.models import DailyConsumptionRecord, MonthlyAggregate, WeeklyAggregate


def week_key(day: date) -> tuple[int, int]:
    iso_year, week, _ = day.isocalendar()
    return iso_year, week


def group_by_week(records: Iterable[DailyConsumptionRecord]) -> list[WeeklyAggregate]:
    weeks: dict[tuple[int, int], WeeklyAggregate] = {}

    for record in records:
        iso_year, week = week_key(record.date)
        aggregate = weeks.get((iso_year, week))
        if aggregate is None:
            start = date.fromisocalendar(iso_year, week, 1)
            aggregate = weeks[(iso_year, week)] = WeeklyAggregate(
                week=f"{iso_year}-W{week:02d}",
                year=iso_year,
                week_number=week,
                start_date=start,
                end_date=start + timedelta(days=6),
            )
        aggregate.total_consumption += record.total_consumption
        aggregate.days_count += 1

    return [weeks[k] for k in sorted(weeks)]


def group_by_month(records: Iterable[DailyConsumptionRecord]) -> list[MonthlyAggregate]:
    months: dict[str, MonthlyAggregate] = {}

    for record in records:
        day = record.date
        key = f"{day.year}-{day.month:02d}"
        aggregate = months.get(key)
        if aggregate is None:
            last_day = calendar.monthrange(day.year, day.month)[1]
            aggregate = months[key] = MonthlyAggregate(
                month=key,
                year=day.year,
                month_name=calendar.month_name[day.month],
                start_date=date(day.year, day.month, 1),
                end_date=date(day.year, day.month, last_day),
            )
        aggregate.total_consumption += record.total_consumption
        aggregate.days_count += 1

    # zero-padded keys sort chronologically
    return [months[k] for k in sorted(months)]
