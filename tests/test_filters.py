from qmedia.queries.filters import FilterParams, build_predicate, fts_query, lens_variants, sanitize_term
from qmedia.util.time import SENTINEL_DATE

ALIASES = {
    "XF23mmF2 R WR": "Fujinon 23mm",
    "Fujifilm XF23mmF2": "Fujinon 23mm",
    "FE 35mm F1.8": "Sony 35mm",
}


def test_default_predicate_excludes_undated() -> None:
    pred = build_predicate(FilterParams())
    assert pred.sql() == "FROM media m WHERE m.date != ?"
    assert pred.args == [SENTINEL_DATE]


def test_predicate_combines_filters_in_order() -> None:
    params = FilterParams(
        rating=3,
        date_from="2020-01-01T00:00:00.000Z",
        camera="X100V",
        term="beach day!",
        subject="family",
        media_type="image",
    )
    pred = build_predicate(params)
    assert pred.sql() == (
        "FROM media m"
        " INNER JOIN images_virtual v ON m.hash = v.hash"
        " INNER JOIN images_tags it ON m.hash = it.image_id"
        " INNER JOIN tags t ON it.tag_id = t.id"
        " WHERE m.date != ? AND images_virtual MATCH ? AND t.key = ? AND m.rating >= ?"
        " AND m.date >= ? AND m.camera = ? AND m.mediatype = ?"
    )
    assert pred.args == [
        SENTINEL_DATE,
        '"beach"* "day"*',
        "family",
        3,
        "2020-01-01T00:00:00.000Z",
        "X100V",
        "image",
    ]


def test_lens_filter_expands_aliases() -> None:
    pred = build_predicate(FilterParams(lens="XF23mmF2 R WR"), ALIASES)
    assert "m.lens IN (?, ?, ?)" in pred.sql()
    assert pred.args[1:] == ["XF23mmF2 R WR", "Fujifilm XF23mmF2", "Fujinon 23mm"]


def test_lens_variants() -> None:
    assert lens_variants("Fujinon 23mm", ALIASES) == ["Fujinon 23mm", "XF23mmF2 R WR", "Fujifilm XF23mmF2"]
    assert lens_variants("FE 35mm F1.8", ALIASES) == ["FE 35mm F1.8", "Sony 35mm"]
    assert lens_variants("Unknown", ALIASES) == ["Unknown"]


def test_term_is_sanitized() -> None:
    assert sanitize_term('  "Lisbon" OR tram_line* ') == "Lisbon OR tramline"
    assert fts_query("Lisbon OR") == '"Lisbon"* "OR"*'
    assert build_predicate(FilterParams(term="!!!")).joins == []


def test_normalized_params() -> None:
    params = FilterParams(order_by="rating", direction="asc", page_size=100000, cursor=-4).normalized()
    assert params.order_by == "date"
    assert params.direction == "ASC"
    assert params.page_size == 5000
    assert params.cursor == 0
    assert FilterParams(camera="a").fingerprint() != FilterParams(camera="b").fingerprint()
