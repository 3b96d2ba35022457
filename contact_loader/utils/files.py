"""
File system helpers used by the logging setup.
"""
from os import remove, scandir, path
from shutil import rmtree


def clear_latest_items(dir_path: str, n_to_keep: int) -> int:
    """
    Remove the oldest entries of a directory, keeping only the `n_to_keep`
    most recently modified ones.

    Args:
        dir_path: Directory whose entries are pruned.
        n_to_keep: Number of newest entries to keep.

    Returns:
        Number of entries removed.

    Raises:
        FileNotFoundError: If `dir_path` does not exist.
    """
    if not path.exists(dir_path):
        raise FileNotFoundError(f"Path not found: {dir_path}")

    entries = sorted(scandir(dir_path), key=lambda entry: entry.stat().st_mtime)
    stale = entries[:max(0, len(entries) - n_to_keep)]

    removed = 0
    for entry in stale:
        try:
            if entry.is_dir(follow_symlinks=False):
                rmtree(entry.path)
            else:
                remove(entry.path)
            removed += 1
        except OSError as e:
            # Another process may still hold a handle on an old log file
            print(f"Could not remove {entry.path}: {e}")
    return removed
