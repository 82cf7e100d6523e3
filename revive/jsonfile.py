"""Whole-file JSON persistence."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def read_json(path: Path, **kwargs) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"), **kwargs)


def write_json(path: Path, data: Any, **kwargs) -> None:
    """Serialize ``data`` and atomically replace ``path``.

    The document is written to a sibling temp file first so a crash never
    leaves a half-written file behind.
    """
    path = Path(path)
    content = json.dumps(data, indent=2, **kwargs) + "\n"
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
