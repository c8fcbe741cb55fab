import json
from unittest.mock import patch

import pytest

from blogbuild.cli import main


def write_toml(path, config) -> None:
    lines = [
        f'source_dir = "{config.source_dir.as_posix()}"',
        f'template_dir = "{config.template_dir.as_posix()}"',
        f'feed_output_path = "{config.feed_output_path.as_posix()}"',
        f'site_root = "{config.site_root.as_posix()}"',
        f'lock_file = "{config.lock_file.as_posix()}"',
        'site_url = "https://example.com"',
        "build_workers = 1",
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_build_from_toml_config(make_blog, tmp_path, capsys):
    config = make_blog({"hello.md": '# Hello\n\n<time datetime="2020-01-01">Jan</time>\n\nWorld.'})
    config_path = tmp_path / "blog.toml"
    write_toml(config_path, config)

    assert main(["build", "--config", str(config_path)]) == 0

    assert (config.source_dir / "hello.html").exists()
    feed = config.feed_output_path.read_text(encoding="utf-8")
    assert "https://example.com/blog/hello.html" in feed
    out = capsys.readouterr().out
    assert "Built 1, skipped 0, failed 0" in out


def test_command_line_overrides_config(make_blog, tmp_path):
    config = make_blog({"hello.md": "# Hello"})
    config_path = tmp_path / "blog.json"
    config_path.write_text(
        json.dumps(
            {
                "source_dir": str(tmp_path / "missing"),
                "template_dir": str(config.template_dir),
                "lock_file": str(config.lock_file),
            }
        ),
        encoding="utf-8",
    )

    code = main(
        [
            "--config",
            str(config_path),
            "--source-dir",
            str(config.source_dir),
            "--feed-output-path",
            str(config.feed_output_path),
            "--no-smart",
        ]
    )

    assert code == 0
    assert (config.source_dir / "hello.html").exists()


def test_document_failure_exits_nonzero(make_blog, tmp_path, capsys):
    config = make_blog({"a.md": "# A", "b.md": "# B"})
    config_path = tmp_path / "blog.toml"
    write_toml(config_path, config)

    with patch("blogbuild.render.subprocess.run", side_effect=FileNotFoundError("cmark")):
        code = main(["--config", str(config_path), "--renderer", "cmark"])

    assert code == 1
    out = capsys.readouterr().out
    assert "failed 2" in out
    assert "FAILED" in out and "a.md" in out


def test_missing_source_dir_exits_nonzero(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "none.toml"), "--source-dir", str(tmp_path / "nope")])

    assert code == 1
    assert "Build failed" in capsys.readouterr().err


def test_unknown_renderer_in_config(tmp_path, capsys):
    config_path = tmp_path / "blog.yaml"
    config_path.write_text("renderer: pandoc\n", encoding="utf-8")

    assert main(["--config", str(config_path)]) == 1
    assert "Unknown renderer" in capsys.readouterr().err


def test_invalid_config_file_exits(tmp_path):
    config_path = tmp_path / "blog.toml"
    config_path.write_text("source_dir = [", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(config_path)])

    assert excinfo.value.code == 1


def test_watch_command_stops_on_interrupt(make_blog, tmp_path, capsys):
    config = make_blog({"a.md": "a"})
    config_path = tmp_path / "blog.toml"
    write_toml(config_path, config)

    with patch("blogbuild.cli.watch", side_effect=KeyboardInterrupt) as mock_watch:
        assert main(["watch", "--config", str(config_path), "--debounce", "0.5"]) == 0

    passed_config = mock_watch.call_args.args[0]
    assert passed_config.debounce == 0.5
    assert passed_config.source_dir == config.source_dir
    assert "Stopped watching." in capsys.readouterr().out
