"""On-disk size of a directory tree."""

import os
import stat

import structlog

log = structlog.get_logger()


def directory_size(root: str | os.PathLike[str]) -> int:
    """Sum the byte size of every non-directory entry below root.

    Directories contribute 0. Entries or subdirectories that cannot be read
    contribute 0 instead of failing the whole walk.

    Symlinks are never followed: a link counts its own size and is not
    descended into, so cycles and double counting cannot happen.
    """
    total = 0
    stack = [os.fspath(root)]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            log.debug("size_scan_skipped", path=current, error=str(e))
            continue

        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError:
                continue
            if stat.S_ISDIR(st.st_mode):
                stack.append(entry.path)
            else:
                total += st.st_size

    return total
