import json

import pytest

from shardprint.cli import build_parser, main


@pytest.fixture
def dataset_file(tmp_path):
    path = tmp_path / "dataset.json"
    path.write_text(
        json.dumps(
            {
                "locations": [3, 1, 2],
                "variables": {"QC/flag": {"kind": "int", "values": [30, 10, None]}},
            }
        )
    )
    return path


def test_parser_defaults():
    args = build_parser().parse_args(["render", "data.json"])
    assert args.ranks == 1
    assert args.policy == "round_robin"


def test_render_across_ranks(dataset_file, tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"variables": [{"name": "QC/flag"}], "column_width": 6}))

    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset_file), "--config", str(config), "--ranks", "2"])
    assert exc.value.code == 0

    out = capsys.readouterr().out
    assert out.count("### Printing filter data ###") == 1
    assert "Location |      1 |      2 |      3 | " in out
    assert " QC/flag |     10 | missing |     30 | " in out


def test_bad_range_reports_error(dataset_file, tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"locmin": 2, "locmax": 1}))
    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset_file), "--config", str(config)])
    assert exc.value.code == 1
    assert "cannot be larger" in capsys.readouterr().err


def test_missing_dataset(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["render", str(tmp_path / "nope.json")])
    assert exc.value.code == 1


def test_malformed_config_exits_2(dataset_file, tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text("{not json")
    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset_file), "--config", str(config)])
    assert exc.value.code == 2
    assert "invalid config" in capsys.readouterr().err


def test_malformed_dataset_exits_2(tmp_path, capsys):
    dataset = tmp_path / "dataset.json"
    dataset.write_text("[1, 2")
    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset)])
    assert exc.value.code == 2
    assert "invalid dataset" in capsys.readouterr().err


def test_inconsistent_dataset_exits_1(tmp_path, capsys):
    dataset = tmp_path / "dataset.json"
    dataset.write_text(
        json.dumps(
            {
                "locations": [0, 1, 2],
                "variables": {"QC/flag": {"kind": "int", "values": [1, 2]}},
            }
        )
    )
    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset), "--ranks", "2"])
    assert exc.value.code == 1
    assert "expected 3" in capsys.readouterr().err


def test_duplicate_rows_exit_1(dataset_file, tmp_path):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"variables": [{"name": "QC/flag"}, {"name": "QC/flag"}]}))
    with pytest.raises(SystemExit) as exc:
        main(["render", str(dataset_file), "--config", str(config)])
    assert exc.value.code == 1
