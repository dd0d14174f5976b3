import re

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]
SHARE_TOKEN_PATTERN = re.compile(r"/s/([a-zA-Z0-9_-]+)")
WINDOWS_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:\\")


def format_bytes(size: float, decimals: int = 2) -> str:
    """Render a byte count with a binary unit, e.g. ``1536 -> "1.5 KB"``."""
    if size == 0:
        return "0 Bytes"

    value = float(size)
    unit = 0
    while abs(value) >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1

    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        return _plural(int(seconds // 60), "minute")
    if seconds < 86400:
        return _plural(int(seconds // 3600), "hour")
    return _plural(int(seconds // 86400), "day")


def format_time(seconds: float | None) -> str:
    """``m:ss`` countdown used next to progress bars."""
    if not seconds or seconds < 0:
        return "--:--"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def extract_share_token(value: str) -> str:
    # full links look like https://zipshare.io/s/<token>
    match = SHARE_TOKEN_PATTERN.search(value)
    if match:
        return match.group(1)
    return value


def is_path_safe(file_path: str) -> bool:
    normalized = file_path.replace("\\", "/")
    if ".." in normalized:
        return False
    if not file_path.startswith("/") and not WINDOWS_DRIVE_PATTERN.match(file_path):
        return False
    return True
