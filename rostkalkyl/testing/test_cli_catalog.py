import json
from pathlib import Path

import pytest

from rostkalkyl.cli import catalog_cli as cli

DEMO_CATALOG = Path(__file__).resolve().parents[1] / "data" / "meps_catalog.yaml"


def _write_csv(path: Path, lines):
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_validate_demo_catalog(capsys):
    exit_code = cli.main(["validate-catalog", "--path", str(DEMO_CATALOG)])
    assert exit_code == 0
    assert "is valid: 20 tasks" in capsys.readouterr().out


def test_validate_reports_rejected_rows(tmp_path, capsys):
    csv_path = tmp_path / "meps.csv"
    _write_csv(
        csv_path,
        [
            "id;name_sv;unit;labor_hours_per_unit;material_cost_per_unit",
            "MÅL-TAK;Måla tak;m2;0,1;18",
            "MÅL-X;Något;liter;0,1;18",
        ],
    )
    exit_code = cli.main(["validate-catalog", "--path", str(csv_path)])
    out = capsys.readouterr().out
    assert exit_code == 1
    assert "1 fel i katalogen" in out
    assert "Accepted 1 tasks" in out


def test_stats_counts_units_and_surfaces(capsys):
    exit_code = cli.main(["stats", "--path", str(DEMO_CATALOG)])
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "- tasks: 20 (rejected rows: 0)" in out
    assert "area=" in out and "wall=" in out


def test_missing_catalog_file_fails(tmp_path, capsys):
    exit_code = cli.main(["stats", "--path", str(tmp_path / "missing.yaml")])
    assert exit_code == 1
    assert "Error:" in capsys.readouterr().err


def test_estimate_json(capsys):
    exit_code = cli.main(
        [
            "estimate",
            "grundmåla taket",
            "lacka fönstren",
            "--width", "4",
            "--length", "5",
            "--height", "2.5",
            "--json",
        ]
    )
    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [item["task_id"] for item in payload["line_items"]] == ["MÅL-TAK-GRUNDMÅL-M2"]
    assert payload["unmapped"] == ["lacka fönster"]
    assert payload["totals"]["subtotal"] == pytest.approx(1320.0)


def test_estimate_text_output(capsys):
    exit_code = cli.main(["estimate", "måla väggarna", "--width", "4", "--length", "5", "--height", "2.5"])
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Målning:" in out
    assert "Total:" in out and "SEK" in out


def test_estimate_rejects_bad_geometry(capsys):
    exit_code = cli.main(["estimate", "måla taket", "--width", "4", "--length", "5", "--height", "25"])
    assert exit_code == 1
    assert "Invalid room measurements" in capsys.readouterr().err


def test_converse_script(tmp_path, capsys):
    script = tmp_path / "replies.txt"
    script.write_text(
        "Villa Ek\nKöket\n4 gånger 5 gånger 2,5\ngrundmåla taket\nklar\nja\n",
        encoding="utf-8",
    )
    exit_code = cli.main(["converse", "--script", str(script)])
    out = capsys.readouterr().out
    assert exit_code == 0
    assert out.startswith("Vad heter projektet?")
    assert "> grundmåla taket" in out
    assert "Kalkylen är bekräftad" in out
    assert "Grundmåla tak" in out


def test_converse_unfinished_script(tmp_path, capsys):
    script = tmp_path / "replies.txt"
    script.write_text("Villa Ek\n", encoding="utf-8")
    assert cli.main(["converse", "--script", str(script)]) == 1
    assert "ended before" in capsys.readouterr().out
