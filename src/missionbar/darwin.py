"""ctypes bindings for the macOS calls the probe needs.

- proc_pidinfo(PROC_PIDTASKALLINFO): memory sizes and cumulative CPU time
- proc_pidinfo(PROC_PIDTASKINFO): the smaller task record, used for resident
  size when the combined record is refused
- mach_timebase_info: scale for converting task CPU times to nanoseconds
- sysctlbyname: integer kernel parameters such as hw.logicalcpu

Loading this module opens libproc.dylib, so import it only on darwin.
"""

import ctypes
import functools
from ctypes import (
    POINTER,
    Structure,
    byref,
    c_char,
    c_char_p,
    c_int,
    c_int32,
    c_size_t,
    c_uint32,
    c_uint64,
    c_void_p,
)

from missionbar.probe import TaskInfo

_libproc = ctypes.CDLL("/usr/lib/libproc.dylib", use_errno=True)
_libc = ctypes.CDLL(None, use_errno=True)

PROC_PIDTASKALLINFO = 2
PROC_PIDTASKINFO = 4
MAXCOMLEN = 16


class _TimebaseInfo(Structure):
    _fields_ = [("numer", c_uint32), ("denom", c_uint32)]


class _ProcBSDInfo(Structure):
    """struct proc_bsdinfo. Only its size matters here."""

    _fields_ = [
        ("pbi_flags", c_uint32),
        ("pbi_status", c_uint32),
        ("pbi_xstatus", c_uint32),
        ("pbi_pid", c_uint32),
        ("pbi_ppid", c_uint32),
        ("pbi_uid", c_uint32),
        ("pbi_gid", c_uint32),
        ("pbi_ruid", c_uint32),
        ("pbi_rgid", c_uint32),
        ("pbi_svuid", c_uint32),
        ("pbi_svgid", c_uint32),
        ("rfu_1", c_uint32),
        ("pbi_comm", c_char * MAXCOMLEN),
        ("pbi_name", c_char * (2 * MAXCOMLEN)),
        ("pbi_nfiles", c_uint32),
        ("pbi_pgid", c_uint32),
        ("pbi_pjobc", c_uint32),
        ("e_tdev", c_uint32),
        ("e_tpgid", c_uint32),
        ("pbi_nice", c_int32),
        ("pbi_start_tvsec", c_uint64),
        ("pbi_start_tvusec", c_uint64),
    ]


class _ProcTaskInfo(Structure):
    """struct proc_taskinfo (sys/proc_info.h). Field order is ABI."""

    _fields_ = [
        ("pti_virtual_size", c_uint64),
        ("pti_resident_size", c_uint64),
        ("pti_total_user", c_uint64),
        ("pti_total_system", c_uint64),
        ("pti_threads_user", c_uint64),
        ("pti_threads_system", c_uint64),
        ("pti_policy", c_int32),
        ("pti_faults", c_int32),
        ("pti_pageins", c_int32),
        ("pti_cow_faults", c_int32),
        ("pti_messages_sent", c_int32),
        ("pti_messages_received", c_int32),
        ("pti_syscalls_mach", c_int32),
        ("pti_syscalls_unix", c_int32),
        ("pti_csw", c_int32),
        ("pti_threadnum", c_int32),
        ("pti_numrunning", c_int32),
        ("pti_priority", c_int32),
    ]


class _ProcTaskAllInfo(Structure):
    """struct proc_taskallinfo: BSD info followed by task info."""

    _fields_ = [("pbsd", _ProcBSDInfo), ("ptinfo", _ProcTaskInfo)]


_libproc.proc_pidinfo.argtypes = [c_int, c_int, c_uint64, c_void_p, c_int]
_libproc.proc_pidinfo.restype = c_int
_libc.mach_timebase_info.argtypes = [POINTER(_TimebaseInfo)]
_libc.mach_timebase_info.restype = c_int
_libc.sysctlbyname.argtypes = [c_char_p, c_void_p, POINTER(c_size_t), c_void_p, c_size_t]
_libc.sysctlbyname.restype = c_int


@functools.cache
def timebase() -> tuple[int, int]:
    """(numer, denom) for mach absolute time. (1, 1) on Intel, (125, 3) on Apple Silicon."""
    info = _TimebaseInfo()
    _libc.mach_timebase_info(byref(info))
    if info.denom == 0:
        return 1, 1
    return info.numer, info.denom


def mach_to_ns(ticks: int) -> int:
    """Convert mach absolute time units to nanoseconds."""
    numer, denom = timebase()
    return ticks * numer // denom


def _pidinfo(pid: int, flavor: int, raw: Structure) -> bool:
    """Fill raw with proc_pidinfo; False unless the whole record came back."""
    size = ctypes.sizeof(raw)
    return _libproc.proc_pidinfo(pid, flavor, 0, byref(raw), size) == size


def task_info(pid: int) -> TaskInfo | None:
    """Task metrics for pid from the combined BSD and task record.

    None if the process exited or the kernel refuses the record.
    """
    raw = _ProcTaskAllInfo()
    if not _pidinfo(pid, PROC_PIDTASKALLINFO, raw):
        return None
    task = raw.ptinfo
    return TaskInfo(
        resident_size=task.pti_resident_size,
        virtual_size=task.pti_virtual_size,
        cpu_time_ns=mach_to_ns(task.pti_total_user + task.pti_total_system),
    )


def resident_size(pid: int) -> int | None:
    """Resident size from the task record alone, or None."""
    raw = _ProcTaskInfo()
    if not _pidinfo(pid, PROC_PIDTASKINFO, raw):
        return None
    return raw.pti_resident_size


def sysctl_int(name: str) -> int | None:
    """Integer value of a sysctl by name, or None if it does not exist.

    Reads into a zeroed 64-bit buffer; 32-bit values land in the low half.
    """
    value = ctypes.c_int64()
    size = c_size_t(ctypes.sizeof(value))
    if _libc.sysctlbyname(name.encode(), byref(value), byref(size), None, 0) != 0:
        return None
    return value.value
