from __future__ import annotations

import json
import time
import zipfile
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence


def _captured_pages(debug_dir: Path) -> list[Path]:
    if not debug_dir.is_dir():
        return []
    return sorted(p for p in debug_dir.glob("*.html") if p.is_file())


def create_debug_bundle(
    *,
    debug_dir: str,
    log_file: str,
    out_dir: str = "data",
    label: str = "",
    runs: Optional[Sequence[Mapping[str, Any]]] = None,
) -> Path:
    """
    Zip what is needed to diagnose a failed run:

    - the connector log
    - captured portal pages under `pages/`, with `pages/INDEX.txt` listing them in fetch order
    - `runs.json`: the latest rows of the state DB `runs` table, when given

    Credentials (.env, config.yaml) and downloaded bills never go in.
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    suffix = (label or "").strip().lower()
    name = "_".join(p for p in ("debug_bundle", suffix, time.strftime("%Y%m%d_%H%M%S")) if p)
    out_path = out_root / f"{name}.zip"

    log = Path(log_file)
    pages = _captured_pages(Path(debug_dir))

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if log.is_file():
            z.write(log, arcname=log.name)

        index: list[str] = []
        for page in pages:
            try:
                size = page.stat().st_size
                z.write(page, arcname=f"pages/{page.name}")
            except OSError:
                # page vanished between listing and zipping
                continue
            index.append(f"{page.name}\t{size}")
        if index:
            z.writestr("pages/INDEX.txt", "\n".join(index) + "\n")

        if runs:
            z.writestr("runs.json", json.dumps(list(runs), indent=2, default=str))

    return out_path
