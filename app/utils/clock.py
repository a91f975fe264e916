from datetime import datetime, timezone


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
	"""SQLite повертає naive datetime: вважаємо його UTC."""
	if value is None:
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)
