import json

import pytest

from frieza.cli import build_arg_parser, config_from_args, main


def parse(argv):
    return config_from_args(build_arg_parser().parse_args(argv))


def test_flags_map_onto_run_config():
    config = parse(
        [
            "-c", "3", "-q", "1", "-z", "2s", "-t", "4",
            "-H", "Origin: https://example.com", "-H", "X-Load: yes",
            "-k", "-d", "hello", "-U", "loadbot/1.0", "-vv",
            "-resolve", "example.com:443:10.0.0.1,10.0.0.2",
            "wss://example.com/feed",
        ]
    )
    assert config.url == "wss://example.com/feed"
    assert config.connections == 3
    assert config.rate == 1
    assert config.duration == 2.0
    assert config.timeout == 4.0
    assert config.headers == (("Origin", "https://example.com"), ("X-Load", "yes"))
    assert config.insecure
    assert config.body == b"hello"
    assert config.user_agent == "loadbot/1.0"
    assert config.very_verbose and config.verbose
    assert config.resolve == "example.com:443:10.0.0.1,10.0.0.2"


def test_defaults():
    config = parse(["ws://example.com/"])
    assert config.connections == 50
    assert config.rate == 50
    assert config.duration == 300.0
    assert config.timeout == 20.0
    assert config.user_agent == "frieza/0.0.1"
    assert not config.insecure
    assert not config.verbose


def test_body_file_wins_over_literal(tmp_path):
    body = tmp_path / "body.txt"
    body.write_bytes(b"from file")
    config = parse(["-d", "literal", "-D", str(body), "ws://example.com/"])
    assert config.body == b"from file"


def test_flags_override_config_file(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"url": "ws://example.com/", "connections": 9, "rate": 3}), encoding="utf-8")
    config = parse(["-config", str(path), "-c", "2"])
    assert config.connections == 2
    assert config.rate == 3


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["-H", "not a header", "ws://example.com/"],
        ["-resolve", "example.com:443", "ws://example.com/"],
        ["-z", "forever", "ws://example.com/"],
        ["-c", "0", "ws://example.com/"],
        ["-D", "/nonexistent/frieza/body", "ws://example.com/"],
        ["-bogus", "ws://example.com/"],
    ],
)
def test_usage_errors_exit_1(argv, capsys):
    assert main(argv) == 1
    captured = capsys.readouterr()
    assert "Usage: frieza [options...] <url>" in captured.err
    assert captured.out == ""


def test_help_prints_usage(capsys):
    assert main(["-h"]) == 0
    assert "-resolve" in capsys.readouterr().err


def test_main_prints_report(threaded_push_target, capsys):
    assert main(["-c", "3", "-z", "500ms", threaded_push_target]) == 0
    assert "300 bytes read from 3 websockets" in capsys.readouterr().out


def test_host_and_h2_are_accepted_and_ignored():
    config = parse(["-host", "example.org", "-h2", "-c", "2", "ws://example.com/"])
    assert config.url == "ws://example.com/"
    assert config.connections == 2
    assert not config.resolve


def test_ignored_options_are_reported(threaded_push_target, caplog, capsys):
    assert main(["-host", "example.org", "-h2", "-c", "1", "-z", "300ms", threaded_push_target]) == 0
    assert "100 bytes read from 1 websockets" in capsys.readouterr().out
    assert "-host is not supported" in caplog.text
    assert "-h2 is not supported" in caplog.text
