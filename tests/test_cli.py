import pytest

from extractatlases import cli

from synthetic import save_png, theme_screenshot


def test_build_parser_creates_arguments():
    parser = cli.build_parser()
    args = parser.parse_args(["shots", "out", "--max-threads", "3", "--no-manifest"])
    assert args.input.name == "shots"
    assert args.output.name == "out"
    assert args.max_threads == 3
    assert args.no_manifest is True
    assert args.verbose is False


def test_wrong_argument_count_exits_nonzero():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["only-one"])
    assert excinfo.value.code != 0


def test_rejects_non_positive_threads():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["shots", "out", "--max-threads", "0"])
    assert excinfo.value.code != 0


def test_missing_input_directory_returns_error(tmp_path):
    assert cli.main([str(tmp_path / "missing"), str(tmp_path / "out")]) == 1


def test_main_writes_atlas(tmp_path):
    shots = tmp_path / "shots"
    shots.mkdir()
    save_png(theme_screenshot(3), shots / "1.png")
    out = tmp_path / "out"
    assert cli.main([str(shots), str(out), "--no-manifest"]) == 0
    assert (out / "Magenta.png").exists()
    assert not (out / "atlases.json").exists()


def test_unwritable_output_returns_error(tmp_path):
    shots = tmp_path / "shots"
    shots.mkdir()
    save_png(theme_screenshot(3), shots / "1.png")
    out = tmp_path / "out"
    (out / "Magenta.png").mkdir(parents=True)
    assert cli.main([str(shots), str(out)]) == 1
