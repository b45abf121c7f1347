import pandas as pd

from false_negatives.runner import main


def write_csv(path):
    pd.DataFrame(
        [("a", 0, 10, 5), ("a", 2, 10, 8), ("b", 1, 12, 9)],
        columns=["study", "day", "n", "test_pos"],
    ).to_csv(path, index=False)
    return path


def test_scenarios_lists_defaults(capsys):
    assert main(["scenarios"]) == 0
    out = capsys.readouterr().out
    assert "baseline" in out
    assert "spec=0.9" in out
    assert "attack x4.0" in out


def test_missing_data_file_is_an_error(tmp_path, capsys):
    assert main(["run", "--data", str(tmp_path / "missing.csv")]) == 2
    assert "error" in capsys.readouterr().err


def test_unknown_scenario_is_an_error(tmp_path):
    csv_path = write_csv(tmp_path / "obs.csv")
    assert main(["run", "--data", str(csv_path), "--scenario", "no such thing"]) == 2


def test_invalid_exposed_counts_are_an_error(tmp_path):
    csv_path = write_csv(tmp_path / "obs.csv")
    assert main(["run", "--data", str(csv_path), "--exposed-n", "10", "--exposed-pos", "20"]) == 2


def test_bad_sampler_settings_fail_each_scenario(tmp_path, capsys):
    csv_path = write_csv(tmp_path / "obs.csv")
    status = main([
        "run", "--data", str(csv_path), "--scenario", "baseline",
        "--iter", "100", "--warmup", "100", "--no-plots",
    ])
    assert status == 1
    out = capsys.readouterr().out
    assert "[failed]" in out
    assert "ConfigurationError" in out
