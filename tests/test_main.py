from config import API_BASE_URL, DEFAULT_PORT
from main import _parse_args


def test_defaults_come_from_config():
    args = _parse_args([])
    assert args.api_url == API_BASE_URL
    assert args.port == DEFAULT_PORT
    assert not args.no_browser


def test_command_line_overrides():
    args = _parse_args(["--api-url", "https://exams.example/api", "--port", "8765", "--no-browser"])
    assert args.api_url == "https://exams.example/api"
    assert args.port == 8765
    assert args.no_browser
