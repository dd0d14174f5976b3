import pytest

from zipshare.utils.formatting import (
    extract_share_token,
    format_bytes,
    format_duration,
    format_time,
    is_path_safe,
)


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
        (1073741824, "1 GB"),
        (1234567890, "1.15 GB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_format_bytes_decimals():
    assert format_bytes(1234567, decimals=0) == "1 MB"


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (45, "45 seconds"),
        (60, "1 minute"),
        (150, "2 minutes"),
        (3600, "1 hour"),
        (7200, "2 hours"),
        (86400, "1 day"),
        (604800, "7 days"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(None, "--:--"), (0, "--:--"), (-5, "--:--"), (9, "0:09"), (75, "1:15"), (3600, "60:00")],
)
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("abc123", "abc123"),
        ("https://zipshare.io/s/abc123", "abc123"),
        ("https://zipshare.io/s/a_b-C9?ref=mail", "a_b-C9"),
        ("https://zipshare.io/transfers/tr_1", "https://zipshare.io/transfers/tr_1"),
    ],
)
def test_extract_share_token(value, expected):
    assert extract_share_token(value) == expected


@pytest.mark.parametrize(
    "path, safe",
    [
        ("/home/user/report.pdf", True),
        ("C:\\Users\\me\\report.pdf", True),
        ("report.pdf", False),
        ("./report.pdf", False),
        ("/home/user/../../etc/passwd", False),
        ("C:\\Users\\..\\secret.txt", False),
    ],
)
def test_is_path_safe(path, safe):
    assert is_path_safe(path) is safe
