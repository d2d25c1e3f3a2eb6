"""
Utilitários de datas para cálculos reprodutivos
"""

import calendar
from datetime import date
from typing import List, Optional

AVERAGE_DAYS_PER_MONTH = 30.44


def months_between(start: date, end: date) -> int:
    """
    Meses completos entre duas datas.
    Um mês só conta quando o dia do mês foi atingido (17 meses e 29 dias = 17).
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def years_between(start: date, end: date) -> int:
    """Anos completos entre duas datas"""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def days_between(start: date, end: date) -> int:
    return (end - start).days


def average_months_between(start: date, end: date) -> int:
    """Meses pela média de 30.44 dias/mês (piso)"""
    return int(days_between(start, end) // AVERAGE_DAYS_PER_MONTH)


def mean_interval_days(dates: List[date]) -> Optional[float]:
    """
    Intervalo médio em dias entre datas consecutivas (IEP médio).
    None se houver menos de duas datas.
    """
    ordered = sorted(dates)
    if len(ordered) < 2:
        return None
    intervals = [days_between(a, b) for a, b in zip(ordered, ordered[1:])]
    return sum(intervals) / len(intervals)


def round_half_up(value: float, digits: int = 1) -> float:
    """Arredondamento comercial (0.05 -> 0.1), sem o arredondamento bancário do round()"""
    factor = 10 ** digits
    return int(value * factor + (0.5 if value >= 0 else -0.5)) / factor


def shift_months(d: date, months: int) -> date:
    """Desloca a data em N meses, limitando o dia ao último dia do mês"""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(d.day, last_day))
