from datetime import datetime, timezone

import pytest

from qmedia.errors import DateResolutionError
from qmedia.media.dates import date_from_filename, parse_offset, resolve_capture_date
from qmedia.media.exif import ExifFields


def _utc(*parts: int) -> datetime:
    return datetime(*parts, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("1404139521877.jpg", datetime(2014, 6, 30, 14, 45, 21, 877000, tzinfo=timezone.utc)),
        ("IMG_20230924_142148.jpg", _utc(2023, 9, 24, 14, 21, 48)),
        ("IMG_19990924_142148.jpg", _utc(1999, 9, 24, 14, 21, 48)),
        ("2014-06-11_14.26.04.jpg", _utc(2014, 6, 11, 14, 26, 4)),
        ("20190323-wedding-03.jpg", _utc(2019, 3, 23)),
        ("holiday/VID_20200101_1230.mp4", _utc(2020, 1, 1, 12, 30)),
    ],
)
def test_date_from_filename(name: str, expected: datetime) -> None:
    assert date_from_filename(name) == expected


def test_date_from_filename_unparseable() -> None:
    with pytest.raises(ValueError):
        date_from_filename("holiday.jpg")


def test_parse_offset() -> None:
    assert parse_offset("2:00") == 120
    assert parse_offset("05:30") == 330
    assert parse_offset("45") == 45
    with pytest.raises(ValueError):
        parse_offset("24:00")
    with pytest.raises(ValueError):
        parse_offset("1:75")


def test_capture_date_prefers_subsecond_original() -> None:
    fields = ExifFields(
        {
            "Composite:SubSecDateTimeOriginal": "2022:07:04 18:30:15.250",
            "EXIF:DateTimeOriginal": "2022:07:04 18:30:15",
        }
    )
    capture = resolve_capture_date(fields, "IMG_1.jpg")
    assert capture.source == "SubSecDateTimeOriginal"
    assert capture.date == datetime(2022, 7, 4, 18, 30, 15, 250000, tzinfo=timezone.utc)
    assert capture.offset == 0


def test_capture_date_zeroed_field_is_ignored() -> None:
    fields = ExifFields({"DateTimeOriginal": "0000:00:00 00:00:00"})
    capture = resolve_capture_date(fields, "IMG_20200102_030405.jpg")
    assert capture.source == "filename"
    assert capture.date == _utc(2020, 1, 2, 3, 4, 5)


def test_capture_date_timezone_field_with_daylight_saving() -> None:
    fields = ExifFields(
        {"DateTimeOriginal": "2021:08:01 12:00:00", "TimeZone": 60, "DaylightSavings": 1}
    )
    capture = resolve_capture_date(fields, "x.jpg")
    assert capture.offset == 120
    assert capture.date == _utc(2021, 8, 1, 10, 0)


def test_capture_date_offset_suffix() -> None:
    fields = ExifFields({"SubSecCreateDate": "2021:08:01 12:00:00.5+02:00"})
    capture = resolve_capture_date(fields, "x.jpg")
    assert capture.offset == 120
    assert capture.date == datetime(2021, 8, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)

    fields = ExifFields({"SubSecCreateDate": "2021:08:01 12:00:00-05:00"})
    capture = resolve_capture_date(fields, "x.jpg")
    assert capture.offset == -300
    assert capture.date == _utc(2021, 8, 1, 17, 0)


def test_capture_date_gps_delta() -> None:
    fields = ExifFields(
        {"DateTimeOriginal": "2021:08:01 12:00:00", "GPSDateTime": "2021:08:01 09:00:00Z"}
    )
    capture = resolve_capture_date(fields, "x.jpg")
    assert capture.offset == 180
    assert capture.date == _utc(2021, 8, 1, 9, 0)


def test_capture_date_video_track_date() -> None:
    fields = ExifFields({"QuickTime:TrackCreateDate": "2019:12:31 23:59:59"})
    capture = resolve_capture_date(fields, "clip.mov")
    assert capture.source == "TrackCreateDate"
    assert capture.date == _utc(2019, 12, 31, 23, 59, 59)


def test_capture_date_unresolvable() -> None:
    with pytest.raises(DateResolutionError):
        resolve_capture_date(ExifFields({}), "holiday.jpg")
