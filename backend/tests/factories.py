"""
Provider payload builders for tests
"""

from datetime import datetime, UTC


def at(day: int, hour: int = 9, month: int = 1, year: int = 2026) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=UTC)


def employee_payload(employee_id: str = "1001", **overrides) -> dict:
    payload = {
        "id": employee_id,
        "first_name": "Sanne",
        "surname": "de Vries",
        "email": "sanne@example.nl",
        "status": "active",
        "department": "Groep Zon",
        "position": "Pedagogisch medewerker",
        "location": "Utrecht",
        "start_date": "2024-01-01",
        "hours_per_week": 32,
    }
    payload.update(overrides)
    return payload


def contract(start: str, end: str = None, duration: str = "fixed", **extra) -> dict:
    entry = {"start_date": start, "end_date": end, "contract_duration": duration}
    entry.update(extra)
    return entry


def salary(start: str, hour_wage: float = None, scale: str = None, trede: int = None, **extra) -> dict:
    entry = {"start_date": start, "hour_wage": hour_wage, "scale": scale, "trede": trede}
    entry.update(extra)
    return entry


def hours(start: str, hours_per_week: float, days_per_week: float = None) -> dict:
    return {"start_date": start, "hours_per_week": hours_per_week, "days_per_week": days_per_week}


def employments_payload(
    employee_id: str = "1001",
    contracts: list = None,
    salaries: list = None,
    hours_entries: list = None,
) -> dict:
    return {
        "id": employee_id,
        "start_date": "2024-01-01",
        "contracts": contracts if contracts is not None else [contract("2024-01-01", "2024-12-31")],
        "salary": salaries if salaries is not None else [salary("2024-01-01", hour_wage=20.0, scale="6", trede=3)],
        "hours": hours_entries if hours_entries is not None else [hours("2024-01-01", 32)],
    }
