import json
from pathlib import Path
from unittest.mock import patch

import pytest

from frame_grabber.cli import build_config, build_parser, main
from frame_grabber.pipeline.session import SCREEN, SessionResult


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "talk.mp4"
    path.write_bytes(b"\x00")
    return path


def _result(tmp_path):
    return SessionResult(session_id="s", out_dir=tmp_path, store=None, exported=[])


def test_parser_defaults():
    args = build_parser().parse_args(["talk.mp4"])
    assert args.mode is None
    assert args.fast_scan is True
    assert args.make_zip is True
    assert args.make_pdf is False
    assert args.at == []


def test_build_config_from_flags():
    args = build_parser().parse_args([
        "talk.mp4", "--mode", "pixel-detect", "--sensitivity", "70", "--slide-mode",
        "--no-fast-scan", "--quality", "low", "--dpi", "300", "--fps", "50",
        "--format", "webp", "--preset", "print", "--naming", "scene-index", "--no-zip", "--pdf",
    ])
    cfg = build_config(args)
    assert cfg.mode == "pixel-detect"
    assert cfg.automation.scene_sensitivity == 70
    assert cfg.automation.slide_mode is True
    assert cfg.automation.fast_scan is False
    assert cfg.automation.fps == 30
    assert cfg.capture.quality == "low"
    assert cfg.capture.dpi == 300
    assert cfg.export.export_format == "webp"
    assert cfg.export.preset == "print"
    assert cfg.export.naming == "scene-index"
    assert cfg.export.make_zip is False
    assert cfg.export.make_pdf is True


def test_manual_captures_imply_off_mode():
    cfg = build_config(build_parser().parse_args(["talk.mp4", "--at", "1.5", "--at", "3"]))
    assert cfg.mode == "off"
    assert cfg.manual_timestamps == (1.5, 3.0)


def test_settings_file_seeds_defaults(tmp_path):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"quality": "low", "fps": 12, "exportFormat": "png"}))
    cfg = build_config(build_parser().parse_args(["talk.mp4", "--settings", str(settings)]))
    assert cfg.capture.quality == "low"
    assert cfg.automation.fps == 12
    assert cfg.export.export_format == "png"


class TestMain:
    @pytest.mark.parametrize("extra", [
        ["--dpi", "0"],
        ["--sensitivity", "0"],
        ["--range-start", "5", "--range-end", "2"],
        ["--brightness", "300"],
        ["--mode", "interval", "--at", "2"],
    ])
    def test_invalid_arguments_exit_2(self, video, extra):
        with pytest.raises(SystemExit) as exc:
            main([str(video), *extra])
        assert exc.value.code == 2

    def test_needs_exactly_one_source(self, video):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2
        with pytest.raises(SystemExit) as exc:
            main([str(video), "--screen"])
        assert exc.value.code == 2

    def test_missing_video_exits_2(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([str(tmp_path / "nope.mp4")])
        assert exc.value.code == 2

    def test_screen_automation_needs_time_limit(self):
        with pytest.raises(SystemExit) as exc:
            main(["--screen", "--mode", "interval"])
        assert exc.value.code == 2

    def test_runs_session(self, video, tmp_path):
        with patch("frame_grabber.cli.run_session", return_value=_result(tmp_path)) as run:
            main([str(video), "--mode", "interval", "--max-seconds", "3", "--contrast", "120"])
        cfg, source = run.call_args.args
        assert source == Path(video)
        assert cfg.mode == "interval"
        assert cfg.max_session_s == 3
        assert run.call_args.kwargs["filter_changes"] == {"contrast": 120.0}

    def test_screen_source(self, tmp_path):
        with patch("frame_grabber.cli.run_session", return_value=_result(tmp_path)) as run:
            main(["--screen", "--mode", "pixel-detect", "--max-seconds", "5", "--monitor", "2"])
        assert run.call_args.args[1] == SCREEN
        assert run.call_args.kwargs["screen_monitor"] == 2

    def test_runtime_failure_exits_1(self, video):
        with patch("frame_grabber.cli.run_session", side_effect=RuntimeError("no key")):
            with pytest.raises(SystemExit) as exc:
                main([str(video)])
        assert exc.value.code == 1

    def test_save_settings(self, video, tmp_path):
        settings = tmp_path / "settings.json"
        with patch("frame_grabber.cli.run_session", return_value=_result(tmp_path)):
            main([str(video), "--settings", str(settings), "--save-settings", "--dpi", "600"])
        assert json.loads(settings.read_text())["dpi"] == 600
