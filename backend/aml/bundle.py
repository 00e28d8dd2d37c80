"""Evidence bundle (zip) writer."""

from __future__ import annotations

import io
import zipfile
from typing import Dict, Mapping

BUNDLE_FILENAME = "trancheready-evidence.zip"

# Fixed entry timestamp: identical artifacts give an identical archive
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def zip_named_buffers(named: Mapping[str, bytes]) -> bytes:
    """Deflate every buffer into one zip; entry order = mapping order."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in named.items():
            info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            zf.writestr(info, content, compresslevel=9)
    return buf.getvalue()


def read_zip(blob: bytes) -> Dict[str, bytes]:
    """Inverse of zip_named_buffers (used by verification and tests)."""
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}
