import pytest

from mikros.args import Args, ArgsError, load_args, parse_args, usage


def test_no_args():
    result = parse_args(["service"])
    assert result.help is False
    assert result.config_path is None
    assert result.service_name == "service"


def test_help():
    assert parse_args(["service", "--help"]).help is True


def test_short_help():
    assert parse_args(["service", "-h"]).help is True


def test_config_option():
    result = parse_args(["service", "--config", "/path/to/service.toml"])
    assert result.config_path == "/path/to/service.toml"


def test_missing_config_path_option():
    with pytest.raises(ArgsError) as info:
        parse_args(["service", "--config"])
    assert str(info.value) == "error: --config option requires a file path"


def test_unknown_option():
    with pytest.raises(ArgsError) as info:
        parse_args(["service", "--unknown"])
    assert str(info.value) == "unknown argument: --unknown"


def test_config_and_help_together():
    result = parse_args(["svc", "--config", "a.toml", "-h"])
    assert result == Args(service_name="svc", config_path="a.toml", help=True)


def test_empty_command_line_rejected():
    with pytest.raises(ArgsError):
        parse_args([])


def test_usage_text():
    text = usage("my-svc")
    assert text.splitlines()[0] == "Usage: my-svc [OPTIONS]"
    assert "  -h, --help      Print this help menu." in text
    assert "  --config <path> Specify an alternative 'service.toml' config file." in text


def test_load_args_returns_parsed():
    assert load_args(["svc", "--config", "x.toml"]).config_path == "x.toml"


def test_load_args_help_exits_zero(capsys):
    with pytest.raises(SystemExit) as info:
        load_args(["svc", "--help"])
    assert info.value.code == 0
    assert capsys.readouterr().out.startswith("Usage: svc [OPTIONS]")


def test_load_args_error_exits_one(capsys):
    with pytest.raises(SystemExit) as info:
        load_args(["svc", "--bogus"])
    assert info.value.code == 1
    assert capsys.readouterr().err.strip() == "unknown argument: --bogus"