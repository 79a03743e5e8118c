from pathlib import Path

from PIL import Image
import pytest

from qmedia.errors import ExtractionError
from qmedia.geo import Place, format_location
from qmedia.ids import media_id, tag_slug
from qmedia.media.exif import ExifFields, parse_iso, shutter_fraction, tags_from_subject
from qmedia.media.extractor import MetadataExtractor, build_record
from qmedia.models import IMAGE, VIDEO


class _StubGeocoder:
    def __init__(self) -> None:
        self.calls: list[tuple[float, float]] = []

    def lookup(self, latitude: float, longitude: float) -> Place:
        self.calls.append((latitude, longitude))
        return Place(city="Lisbon", province="Lisboa", country="Portugal")


class _StubReader:
    def __init__(self, fields: dict) -> None:
        self.fields = fields

    def read(self, path: Path) -> dict:
        return dict(self.fields)

    def read_lens(self, path: Path) -> str:
        return "XF23mmF2 R WR"


def test_shutter_fraction() -> None:
    assert shutter_fraction(0.004) == "1/250"
    assert shutter_fraction(0.5) == "1/2"
    assert shutter_fraction(2.0) == "2/1"
    assert shutter_fraction(1 / 3) == "1/3"
    assert shutter_fraction(0) == "0/1"


def test_iso_from_text_and_number() -> None:
    assert parse_iso(ExifFields({"ISO": 400})) == 400
    assert parse_iso(ExifFields({"ISO": "ISO 800"})) == 800
    assert parse_iso(ExifFields({})) == 0
    with pytest.raises(ExtractionError):
        parse_iso(ExifFields({"ISO": "auto"}))


def test_group_prefixes_are_stripped_first_wins() -> None:
    fields = ExifFields({"EXIF:Model": "X100V", "XMP:Model": "other"})
    assert fields.text("Model") == "X100V"
    assert "Model" in fields
    assert fields.strict_text("Model") == "X100V"
    assert fields.strict_text("Missing") == ""


def test_strict_text_skips_numbers() -> None:
    fields = ExifFields({"Software": 1.2})
    assert fields.strict_text("Software") == ""


def test_tag_slugs_and_subject_dedupe() -> None:
    assert tag_slug(" Summer Holiday ") == "summer-holiday"
    tags = tags_from_subject(ExifFields({"Subject": ["Family", "family", "Beach Day"]}).get("Subject"))
    assert [t.key for t in tags] == ["family", "beach-day"]
    assert [t.value for t in tags] == ["Family", "Beach Day"]

    single = tags_from_subject(ExifFields({"Subject": "Dogs"}).get("Subject"))
    assert [t.key for t in single] == ["dogs"]


def test_format_location() -> None:
    assert format_location(Place("Toronto", "Ontario", "Canada")) == "Toronto, Ontario, Canada"
    assert format_location(Place("", "Ontario", "Canada")) == "Ontario, Canada"
    assert format_location(Place("Toronto", "", "Canada")) == "Toronto, Canada"
    assert format_location(Place("", "", "Canada")) == "Canada"
    assert format_location(Place()) == ""


def test_build_record_for_image() -> None:
    geocoder = _StubGeocoder()
    fields = ExifFields(
        {
            "EXIF:DateTimeOriginal": "2022:03:04 05:06:07",
            "EXIF:Model": "X100V",
            "EXIF:ShutterSpeed": 0.004,
            "EXIF:Aperture": 2.0,
            "EXIF:ISO": 160,
            "EXIF:FocalLength": 23.0,
            "EXIF:FocalLengthIn35mmFormat": 35,
            "EXIF:Rating": 4,
            "EXIF:GPSLatitude": 38.72,
            "EXIF:GPSLongitude": -9.14,
            "XMP:Subject": ["Trip"],
            "XMP:Title": "Tram",
            "EXIF:Software": "Digital Camera X100V Ver2.00",
        }
    )
    raster = Image.new("RGB", (600, 400), (200, 10, 10))
    record = build_record(IMAGE, "2022/lisbon/tram.jpg", 1_700_000_000, fields, "XF23mmF2 R WR", raster, geocoder)

    assert record.hash == media_id("2022/lisbon/tram.jpg")
    assert record.folder == "2022/lisbon"
    assert record.date_text == "2022-03-04T05:06:07.000Z"
    assert (record.width, record.height) == (600, 400)
    assert record.ratio == pytest.approx(400 / 600)
    assert record.padding == pytest.approx(400 / 600 * 100)
    assert record.shutter_speed == "1/250"
    assert record.iso == 160
    assert record.focal_length_35 == 35
    assert record.camera == "X100V"
    assert record.lens == "XF23mmF2 R WR"
    assert record.location == "Lisbon, Lisboa, Portugal"
    assert record.title == "Tram"
    assert [t.key for t in record.tags] == ["trip"]
    assert record.color.startswith("#") and len(record.color) == 7
    assert geocoder.calls == [(38.72, -9.14)]


def test_build_record_without_coordinates_skips_geocoder() -> None:
    geocoder = _StubGeocoder()
    fields = ExifFields({"DateTimeOriginal": "2022:03:04 05:06:07"})
    record = build_record(IMAGE, "a.jpg", 0, fields, raster=Image.new("RGB", (10, 10)), geocoder=geocoder)
    assert record.location == ""
    assert record.folder == "."
    assert geocoder.calls == []


def test_build_record_video_swaps_rotated_dimensions() -> None:
    fields = ExifFields(
        {
            "QuickTime:TrackCreateDate": "2020:01:01 00:00:00",
            "QuickTime:ImageWidth": 1920,
            "QuickTime:ImageHeight": 1080,
            "Composite:Rotation": 90,
        }
    )
    record = build_record(VIDEO, "clips/a.mp4", 0, fields, color="#102030")
    assert (record.width, record.height) == (1080, 1920)
    assert record.rotation == 90
    assert record.color == "#102030"
    assert record.media_type == VIDEO


def test_build_record_rejects_unparseable_number() -> None:
    fields = ExifFields({"DateTimeOriginal": "2022:03:04 05:06:07", "Aperture": "wide"})
    with pytest.raises(ExtractionError):
        build_record(IMAGE, "a.jpg", 0, fields, raster=Image.new("RGB", (10, 10)))


def test_extractor_reads_file(tmp_path: Path) -> None:
    Image.new("RGB", (320, 240), (0, 128, 255)).save(tmp_path / "blue.png")
    extractor = MetadataExtractor(tmp_path, _StubReader({"DateTimeOriginal": "2021:01:01 08:00:00"}))
    extracted = extractor.extract(IMAGE, "blue.png")
    assert extracted.record.width == 320
    assert extracted.record.lens == "XF23mmF2 R WR"
    assert extracted.raster is not None


def test_extractor_errors(tmp_path: Path) -> None:
    (tmp_path / "broken.jpg").write_bytes(b"not an image")
    extractor = MetadataExtractor(tmp_path, _StubReader({"DateTimeOriginal": "2021:01:01 08:00:00"}))
    with pytest.raises(ExtractionError):
        extractor.extract(IMAGE, "broken.jpg")
    with pytest.raises(ExtractionError):
        extractor.extract(IMAGE, "missing.jpg")
    with pytest.raises(ExtractionError):
        extractor.extract("document", "notes.txt")
