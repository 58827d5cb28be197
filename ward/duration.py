"""
Length-of-stay formatting and triage colouring.

Everything here is pure: the same inputs always give the same output, so the
ward board can call `classify` once a second for every occupied bed.
"""

from enum import Enum
from typing import NamedTuple

MILLIS_PER_SECOND = 1000
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

WARNING_HOURS = 2
CRITICAL_HOURS = 4


class Severity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class Duration(NamedTuple):
    days: int
    hours: int
    minutes: int
    seconds: int


class Classification(NamedTuple):
    text: str
    severity: Severity


def split_duration(elapsed_millis: int) -> Duration:
    """
    Break elapsed milliseconds into whole days, hours, minutes and seconds.
    Negative input (clock skew) is treated as zero.
    :param elapsed_millis: Elapsed time in milliseconds.
    :return: Duration with hours 0-23, minutes and seconds 0-59.
    """
    seconds_total = max(0, int(elapsed_millis)) // MILLIS_PER_SECOND
    return Duration(
        days=seconds_total // SECONDS_PER_DAY,
        hours=(seconds_total % SECONDS_PER_DAY) // SECONDS_PER_HOUR,
        minutes=(seconds_total % SECONDS_PER_HOUR) // SECONDS_PER_MINUTE,
        seconds=seconds_total % SECONDS_PER_MINUTE,
    )


def format_duration(elapsed_millis: int) -> str:
    """Render elapsed milliseconds as dd:hh:mm:ss, days always included."""
    return ":".join(f"{part:02d}" for part in split_duration(elapsed_millis))


def severity_for(elapsed_millis: int) -> Severity:
    hours = max(0, elapsed_millis) / (MILLIS_PER_SECOND * SECONDS_PER_HOUR)
    if hours >= CRITICAL_HOURS:
        return Severity.CRITICAL
    if hours >= WARNING_HOURS:
        return Severity.WARNING
    return Severity.NORMAL


def classify(now_millis: int, admitted_at_millis: int) -> Classification:
    """
    Format and classify the time a patient has spent in a bed.
    :param now_millis: Current time in epoch milliseconds.
    :param admitted_at_millis: Admission time in epoch milliseconds.
    :return: Classification with the dd:hh:mm:ss text and its severity.
    """
    elapsed = max(0, now_millis - admitted_at_millis)
    return Classification(text=format_duration(elapsed), severity=severity_for(elapsed))
