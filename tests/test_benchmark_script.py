from __future__ import annotations

import csv
import importlib.util
import sys
from pathlib import Path

from tilecp.mbtiles import Mbtiles, MbtType


def _load_script(name: str):
    module_path = Path(__file__).resolve().parents[1] / "scripts" / name
    spec = importlib.util.spec_from_file_location(name.replace(".py", ""), module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    spec.loader.exec_module(module)
    return module


def test_benchmark_copy_script(tmp_path: Path, monkeypatch) -> None:
    module = _load_script("benchmark_copy.py")
    output_dir = tmp_path / "bench"

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "benchmark_copy.py",
            "--max-zoom",
            "2",
            "--concurrency",
            "1,3",
            "--mbtiles-type",
            "flat",
            "--output-dir",
            str(output_dir),
        ],
    )

    assert module.main() == 0
    with (output_dir / "copy.csv").open(encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["concurrency"] for row in rows] == ["1", "3"]
    assert all(row["tiles"] == "21" for row in rows)
    with Mbtiles(output_dir / "copy_c003.mbtiles").open_readonly() as mbt:
        assert mbt.detect_type() is MbtType.FLAT
