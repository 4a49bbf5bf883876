"""
RHOSTS sink — turn a listing's hosts into a target specification.

Short lists become a space-separated value. Longer lists are written to a
temp file, one address per line, and referenced as ``file:<path>``.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path

from credstore.errors import ArtifactIOError

logger = logging.getLogger(__name__)

# Above this many hosts RHOSTS points at a file instead of inlining addresses
INLINE_HOST_LIMIT = 5

RhostsSink = Callable[[Sequence[str]], "str | None"]


def set_rhosts_from_addrs(
    addrs: Sequence[str],
    *,
    rhosts_file: Path | None = None,
    out: Callable[[str], None] = print,
) -> str | None:
    """Report (and optionally persist) RHOSTS for the given addresses.

    Returns the RHOSTS value, or None when the list is empty.
    """
    if not addrs:
        out("[*] The list is empty, cowardly refusing to set RHOSTS")
        return None

    if len(addrs) > INLINE_HOST_LIMIT:
        with tempfile.NamedTemporaryFile(
            "w", prefix="credstore-rhosts-", suffix=".txt", delete=False
        ) as f:
            f.write("\n".join(addrs) + "\n")
        value = f"file:{f.name}"
    else:
        value = " ".join(addrs)

    if rhosts_file is not None:
        try:
            rhosts_file.write_text(value + "\n")
        except OSError as e:
            raise ArtifactIOError(f"Cannot write RHOSTS to {rhosts_file}: {e}") from e
        logger.info("Persisted RHOSTS to %s", rhosts_file)

    out(f"RHOSTS => {value}")
    return value
