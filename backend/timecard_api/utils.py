from datetime import date, datetime, timezone


def utc_now():
    return datetime.now(timezone.utc)


def today():
    return date.today()
