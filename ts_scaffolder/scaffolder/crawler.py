"""Depth-bounded asynchronous directory walk."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

DEFAULT_MAX_DEPTH = 10

EntryCallback = Callable[[bool, Path, Path], Awaitable[None]]


async def crawl_folder(
    folder: str | Path,
    callback: EntryCallback,
    rel_path: str | Path = "",
    max_depth: int = DEFAULT_MAX_DEPTH,
    depth: int = 0,
) -> int:
    """Walk *folder* and await ``callback(is_dir, abs_path, rel_path)`` per entry.

    Entries are visited in sorted order and a directory's callback runs before
    its contents are visited. Folders nested deeper than *max_depth* are not
    listed.

    Returns:
        The number of non-directory entries visited.
    """
    if depth > max_depth:
        return 0

    base = Path(folder)
    listing = await asyncio.to_thread(os.listdir, base)

    count = 0
    for name in sorted(listing):
        full_path = base / name
        entry_rel = Path(rel_path) / name
        is_dir = await asyncio.to_thread(full_path.is_dir)
        if is_dir:
            await callback(True, full_path, entry_rel)
            count += await crawl_folder(
                full_path, callback, entry_rel, max_depth=max_depth, depth=depth + 1
            )
        else:
            await callback(False, full_path, entry_rel)
            count += 1
    return count
