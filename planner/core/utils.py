# planner/core/utils.py
# Fonctions temporelles basiques (naive local et aware UTC) et arithmétique de semaines.

import datetime as dt

DAYS_PER_WEEK = 7


def now():
    """Date/heure locale (naive).

    Description:
        Retourne `datetime.now()` sans timezone attachée. C'est l'horloge de référence
        du planning : les bornes de semaine et les dates planifiées sont en heure locale.

    Returns:
        datetime.datetime: Timestamp local (naive).
    """
    return dt.datetime.now()


def utcnow():
    """Date/heure UTC (timezone-aware).

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return dt.datetime.now(dt.timezone.utc)


def week_start(value: dt.datetime) -> dt.datetime:
    """Début de la semaine (lundi 00:00) contenant `value`.

    Description:
        Les semaines vont du lundi au dimanche ; le jour 0 est le lundi, comme
        `datetime.weekday()`.

    Args:
        value (datetime): Instant quelconque de la semaine.

    Returns:
        datetime: Lundi à minuit.
    """
    start = value - dt.timedelta(days=value.weekday())
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def week_end(value: dt.datetime) -> dt.datetime:
    """Fin de la semaine (dimanche 23:59:59.999) contenant `value`."""
    return week_start(value) + dt.timedelta(days=6, hours=23, minutes=59, seconds=59, milliseconds=999)


def add_weeks(value: dt.datetime, weeks: int) -> dt.datetime:
    return value + dt.timedelta(weeks=weeks)


def day_of_week(value: dt.datetime | dt.date) -> int:
    """Jour de la semaine 0–6 (lundi = 0)."""
    return value.weekday()


def same_day(a: dt.datetime | None, b: dt.datetime | None) -> bool:
    """Vrai si les deux instants tombent le même jour calendaire (sans arrondi)."""
    if a is None or b is None:
        return False
    return a.date() == b.date()


def end_of_day(value: dt.datetime) -> dt.datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999000)


def start_of_day(value: dt.datetime) -> dt.datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def as_datetime(value: dt.date | dt.datetime) -> dt.datetime:
    """Normalise une `date` en `datetime` à minuit (Mongo ne stocke pas de `date` nue)."""
    if isinstance(value, dt.datetime):
        return value
    return dt.datetime.combine(value, dt.time.min)


def minutes_between(start: dt.datetime, end: dt.datetime) -> int:
    return int((end - start).total_seconds() // 60)
