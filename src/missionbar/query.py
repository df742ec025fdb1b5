"""Search, filter and sort helpers over snapshot contents.

The snapshot keeps processes and applications in name order. These helpers
produce the other orders a listing may want without touching the snapshot.
"""

from collections.abc import Iterable
from enum import Enum

from missionbar.models import InstalledApplication, ProcessEntry


class ProcessSort(str, Enum):
    """Process orderings. Natural direction noted per option."""

    NAME = "name"  # A-Z
    CPU = "cpu"  # Busiest first
    MEMORY = "memory"  # Largest first


class AppSort(str, Enum):
    """Application orderings. Natural direction noted per option."""

    NAME = "name"  # A-Z
    SIZE = "size"  # Largest first
    STATUS = "status"  # Running first, then A-Z


def _matches(name: str, search: str | None) -> bool:
    return not search or search.casefold() in name.casefold()


def filter_processes(
    processes: Iterable[ProcessEntry],
    search: str | None = None,
    sort: ProcessSort = ProcessSort.NAME,
    reverse: bool = False,
) -> list[ProcessEntry]:
    """Processes whose name contains `search` (case-insensitive), sorted.

    Args:
        processes: Entries to filter
        search: Substring to match; empty or None keeps everything
        sort: Ordering to apply
        reverse: Flip the natural direction of the ordering
    """
    matched = [p for p in processes if _matches(p.name, search)]
    by_name = sorted(matched, key=lambda p: p.name.casefold())

    if sort == ProcessSort.CPU:
        result = sorted(by_name, key=lambda p: p.cpu_percent, reverse=True)
    elif sort == ProcessSort.MEMORY:
        result = sorted(by_name, key=lambda p: p.memory_bytes, reverse=True)
    else:
        result = by_name

    return result[::-1] if reverse else result


def filter_applications(
    applications: Iterable[InstalledApplication],
    search: str | None = None,
    sort: AppSort = AppSort.NAME,
    user_only: bool = False,
    reverse: bool = False,
) -> list[InstalledApplication]:
    """Applications whose name contains `search` (case-insensitive), sorted.

    Args:
        applications: Entries to filter
        search: Substring to match; empty or None keeps everything
        sort: Ordering to apply
        user_only: Keep only applications that may be uninstalled
        reverse: Flip the natural direction of the ordering
    """
    matched = [
        a
        for a in applications
        if _matches(a.name, search) and (a.can_uninstall or not user_only)
    ]
    by_name = sorted(matched, key=lambda a: a.name.casefold())

    if sort == AppSort.SIZE:
        result = sorted(by_name, key=lambda a: a.size_bytes, reverse=True)
    elif sort == AppSort.STATUS:
        # Stable sort keeps name order within each group
        result = sorted(by_name, key=lambda a: not a.is_running)
    else:
        result = by_name

    return result[::-1] if reverse else result
