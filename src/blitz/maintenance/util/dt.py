import secrets
from datetime import datetime, timezone


def unique_timestamp_hex(random_suffix_length=4):
    return secrets.token_hex(random_suffix_length) + format(int(utc_now().timestamp() * 1000000), 'x')[::-1]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt):
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def format_dt_iso(td):
    if td is None:
        return None
    return td.isoformat()


def format_dt_sql(dt):
    return dt.strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]


def parse_dt_sql(dt_str):
    return datetime.strptime(dt_str, '%Y-%m-%d %H:%M:%S.%f')
