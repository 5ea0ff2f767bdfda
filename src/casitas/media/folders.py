"""Folder naming convention for stored evidence."""

from datetime import date, datetime


def build_folder_path(namespace: str, when: date | datetime) -> str:
    """Build the ``<namespace>/<MM>/semana_<week>`` folder for a date.

    The week is the ISO 8601 week number, so weeks start on Monday.

    >>> build_folder_path("prueba-imagenes", date(2024, 12, 30))
    'prueba-imagenes/12/semana_1'
    """
    week = when.isocalendar()[1]
    return f"{namespace.strip('/')}/{when.month:02d}/semana_{week}"
