"""Formatting helpers for times, durations and HTTP status codes"""

from datetime import datetime
from http import HTTPStatus

# Common transport-level error codes (NSURLError domain).
URL_ERROR_DESCRIPTIONS = {
    -1: "Unknown",
    -999: "Cancelled",
    -1000: "Bad URL",
    -1001: "Timed Out",
    -1002: "Unsupported URL",
    -1003: "Cannot Find Host",
    -1004: "Cannot Connect To Host",
    -1005: "Network Connection Lost",
    -1006: "DNS Lookup Failed",
    -1007: "Too Many Redirects",
    -1008: "Resource Unavailable",
    -1009: "Not Connected To Internet",
    -1011: "Bad Server Response",
    -1012: "User Cancelled Authentication",
    -1013: "User Authentication Required",
    -1014: "Zero Byte Resource",
    -1015: "Cannot Decode Raw Data",
    -1016: "Cannot Decode Content Data",
    -1017: "Cannot Parse Response",
    -1018: "International Roaming Off",
    -1019: "Call Is Active",
    -1020: "Data Not Allowed",
    -1100: "File Does Not Exist",
    -1102: "No Permissions To Read File",
    -1200: "Secure Connection Failed",
    -1202: "Server Certificate Untrusted",
}


def time_of_day(ts: datetime) -> str:
    """HH:MM:SS.mmm in the timestamp's own timezone"""
    return ts.strftime("%H:%M:%S.") + f"{ts.microsecond // 1000:03d}"


def string_precise(interval: float) -> str:
    """Elapsed time as MM:SS.mmm, or HH:MM:SS.mmm past one hour."""
    is_negative = interval < 0
    interval = abs(interval)

    whole = int(interval)
    ms = int(round((interval - whole) * 1000))
    if ms == 1000:
        whole += 1
        ms = 0
    seconds = whole % 60
    minutes = (whole // 60) % 60
    hours = whole // 3600

    if hours >= 1:
        output = f"{hours:02d}:{minutes:02d}:{seconds:02d}.{ms:03d}"
    else:
        output = f"{minutes:02d}:{seconds:02d}.{ms:03d}"
    return ("–" if is_negative else "") + output


def status_code_description(status_code: int) -> str:
    """'200 (OK)', '404 (Not Found)'; unknown codes read 'Unknown'."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        phrase = "Unknown"
    return f"{status_code} ({phrase})"


def url_error_description(error_code: int) -> str:
    return URL_ERROR_DESCRIPTIONS.get(error_code, "Unknown Error")


def duration_description(seconds: float) -> str:
    """Short human duration: '412.0ms', '1.23s', '2m 5s'"""
    if seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, rest = divmod(int(round(seconds)), 60)
    return f"{minutes}m {rest}s"
