import io
from pathlib import Path

import pytest

from sideview_builder.calibration import (
    FIELD_NAMES,
    CalibrationRecord,
    ElementNotFound,
    InvalidCalibrationFile,
    MalformedRecord,
    format_record,
    load_calibration,
    load_calibration_table,
)
from sideview_builder.config import DETECTOR_CONFIG
from sideview_builder.elements import ElementCounts, ElementKind, tag_universe

COUNTS = ElementCounts(bars=9, crystal_vetoes=1, internal_vetoes=18, external_vetoes=12)


def _values(i):
    """Nine distinct, awkward-to-print values per line."""
    return [i + 0.1, -i * 1.5e-3, 1e10 + i, 0.1 * i, -(i + 0.25), 3.0e-7 * (i + 1), i / 7.0, 2.5, 50.0 + i]


def _lines(tags):
    return [" ".join([t, *(repr(v) for v in _values(i))]) for i, t in enumerate(tags)]


def _write(path, lines, header=True):
    text = []
    if header:
        text += ["# calibration file", ""]
    text += lines
    path.write_text("\n".join(text) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def cal_file(tmp_path):
    return _write(tmp_path / "cal.txt", _lines(tag_universe(COUNTS)))


def test_round_trip_every_tag(cal_file):
    for i, tag in enumerate(tag_universe(COUNTS)):
        rec = load_calibration(cal_file, tag[0], int(tag[1:]), counts=COUNTS)
        assert rec.tag == tag
        assert list(rec.values) == _values(i)


def test_v1_fields_in_order(cal_file):
    rec = load_calibration(cal_file, "v", 1, counts=COUNTS)
    expected = _values(9)
    assert rec.effective_velocity == expected[0]
    assert rec.left_adc_factor == expected[1]
    assert rec.right_adc_factor == expected[2]
    assert rec.attenuation_length == expected[3]
    assert rec.left_shift == expected[4]
    assert rec.right_shift == expected[5]
    assert rec.left_tdc_factor == expected[6]
    assert rec.right_tdc_factor == expected[7]
    assert rec.length == expected[8]
    assert list(rec.as_dict())[1:] == list(FIELD_NAMES)


def test_accepts_element_kind_enum(cal_file):
    rec = load_calibration(cal_file, ElementKind.BAR, 9, counts=COUNTS)
    assert rec.tag == "b9"


def test_out_of_range_tag_is_element_not_found(cal_file):
    with pytest.raises(ElementNotFound) as exc:
        load_calibration(cal_file, "v", 32, counts=COUNTS)
    assert "v32" in str(exc.value)
    assert isinstance(exc.value, KeyError)


def test_missing_tag_line_rejected(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    del lines[15]
    p = _write(tmp_path / "missing.txt", lines)
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_truncated_file_rejected(tmp_path):
    p = _write(tmp_path / "short.txt", _lines(tag_universe(COUNTS))[:-1])
    with pytest.raises(InvalidCalibrationFile) as exc:
        load_calibration(p, "b", 1, counts=COUNTS)
    assert "v31" in str(exc.value)


def test_swapped_tags_fail_at_first_mismatch_without_parsing(tmp_path):
    tags = tag_universe(COUNTS)
    lines = _lines(tags)
    # v17 and v18 sit at positions 26 and 27 (1-based)
    lines[25], lines[26] = lines[26], lines[25]
    # a broken target record must not be parsed once validation fails
    lines[9] = "v1 not-a-number"
    p = _write(tmp_path / "swapped.txt", lines)

    with pytest.raises(InvalidCalibrationFile) as exc:
        load_calibration(p, "v", 1, counts=COUNTS)
    msg = str(exc.value)
    assert "record 26" in msg
    assert "expected 'v17'" in msg
    assert "found 'v18'" in msg


def test_empty_file_rejected(tmp_path):
    p = tmp_path / "empty.txt"
    p.write_text("", encoding="utf-8")
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_comments_only_file_rejected(tmp_path):
    p = _write(tmp_path / "comments.txt", ["# nothing here", ""])
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_nonexistent_path_rejected(tmp_path):
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(tmp_path / "does_not_exist.txt", "b", 1, counts=COUNTS)


def test_undecodable_file_rejected(tmp_path):
    p = tmp_path / "binary.txt"
    p.write_bytes(b"\xff\xfe\x00garbage\n")
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_wrong_configuration_rejected(cal_file):
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(cal_file, "v", 1, counts=ElementCounts(crystal_vetoes=4))


def test_comments_and_blank_lines_interleaved(tmp_path):
    lines = []
    for line in _lines(tag_universe(COUNTS)):
        lines += ["", "# next element", line]
    p = _write(tmp_path / "spaced.txt", lines)
    rec = load_calibration(p, "v", 31, counts=COUNTS)
    assert list(rec.values) == _values(39)


def test_trailing_lines_ignored(tmp_path):
    lines = _lines(tag_universe(COUNTS)) + ["extra 1 2 3", "v99 garbage"]
    p = _write(tmp_path / "trailing.txt", lines)
    assert load_calibration(p, "b", 2, counts=COUNTS).tag == "b2"


def test_crlf_line_endings(tmp_path):
    p = tmp_path / "crlf.txt"
    p.write_bytes(("\r\n".join(_lines(tag_universe(COUNTS))) + "\r\n").encode("utf-8"))
    rec = load_calibration(p, "b", 1, counts=COUNTS)
    assert list(rec.values) == _values(0)


def test_short_record_is_malformed(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[4] = "b5 1 2 3 4 5 6 7 8"
    p = _write(tmp_path / "short_record.txt", lines)
    with pytest.raises(MalformedRecord):
        load_calibration(p, "b", 5, counts=COUNTS)
    # other records are unaffected
    assert load_calibration(p, "b", 4, counts=COUNTS).tag == "b4"


def test_non_numeric_field_names_tag_and_field(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[4] = "b5 1 2 abc 4 5 6 7 8 9"
    p = _write(tmp_path / "bad_value.txt", lines)
    with pytest.raises(MalformedRecord) as exc:
        load_calibration(p, "b", 5, counts=COUNTS)
    assert "b5" in str(exc.value)
    assert "field 3" in str(exc.value)


def test_double_space_is_format_error(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[0] = "b1 1  2 3 4 5 6 7 8 9"
    p = _write(tmp_path / "double_space.txt", lines)
    with pytest.raises(MalformedRecord):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_tab_separator_is_format_error(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[0] = lines[0].replace(" ", "\t", 1)
    p = _write(tmp_path / "tab.txt", lines)
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)


@pytest.mark.parametrize(
    "line",
    [
        "b1 1_000 2 3 4 5 6 7 8 9",
        "b1 1 2 3 4 5 6 7 8 9\t",
        "b1 1 2 3 4 5 6 7 8 \t9",
        "b1 1 2 3 4 5 6 7 8 0x10",
    ],
)
def test_non_decimal_field_is_malformed(tmp_path, line):
    lines = _lines(tag_universe(COUNTS))
    lines[0] = line
    p = _write(tmp_path / "odd_number.txt", lines)
    with pytest.raises(MalformedRecord, match="not a number"):
        load_calibration(p, "b", 1, counts=COUNTS)


def test_scientific_and_signed_fields_accepted(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[0] = "b1 +1 -2.5 3. .5 1e3 -2E-2 7 8 9"
    p = _write(tmp_path / "sci.txt", lines)
    rec = load_calibration(p, "b", 1, counts=COUNTS)
    assert list(rec.values) == [1.0, -2.5, 3.0, 0.5, 1000.0, -0.02, 7.0, 8.0, 9.0]


def test_lookup_only_skips_validation(tmp_path):
    p = _write(tmp_path / "partial.txt", _lines(["v3", "b2", "b1"]))
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 2, counts=COUNTS)

    rec = load_calibration(p, "b", 2, counts=COUNTS, strict=False)
    assert list(rec.values) == _values(1)
    with pytest.raises(ElementNotFound):
        load_calibration(p, "v", 1, counts=COUNTS, strict=False)


def test_first_matching_line_wins(tmp_path):
    p = _write(tmp_path / "dupes.txt", _lines(["b1", "b1"]))
    rec = load_calibration(p, "b", 1, counts=COUNTS, strict=False)
    assert list(rec.values) == _values(0)


def test_stream_source_not_closed(cal_file):
    stream = io.StringIO(cal_file.read_text(encoding="utf-8"))
    rec = load_calibration(stream, "b", 3, counts=COUNTS)
    assert rec.tag == "b3"
    assert not stream.closed


def _track_open(monkeypatch):
    handles = []
    real_open = Path.open

    def tracking_open(self, *args, **kwargs):
        fh = real_open(self, *args, **kwargs)
        handles.append(fh)
        return fh

    monkeypatch.setattr(Path, "open", tracking_open)
    return handles


def _swapped(lines):
    lines[0], lines[1] = lines[1], lines[0]
    return lines


def _bad_field(lines):
    lines[0] = "b1 1 2 3 4 five 6 7 8 9"
    return lines


@pytest.mark.parametrize(
    "edit,kind,number,strict,error",
    [
        (_swapped, "b", 1, True, InvalidCalibrationFile),
        (lambda lines: lines[:5], "b", 1, True, InvalidCalibrationFile),
        (_bad_field, "b", 1, True, MalformedRecord),
        (lambda lines: lines[:5], "v", 31, False, ElementNotFound),
    ],
)
def test_file_closed_after_failure(tmp_path, monkeypatch, edit, kind, number, strict, error):
    p = _write(tmp_path / "cal.txt", edit(_lines(tag_universe(COUNTS))))
    handles = _track_open(monkeypatch)
    with pytest.raises(error):
        load_calibration(p, kind, number, counts=COUNTS, strict=strict)
    assert len(handles) == 1
    assert handles[0].closed


def test_file_closed_after_decode_error(tmp_path, monkeypatch):
    p = tmp_path / "binary.txt"
    p.write_bytes(b"b1 \xff\xfe\n")
    handles = _track_open(monkeypatch)
    with pytest.raises(InvalidCalibrationFile):
        load_calibration(p, "b", 1, counts=COUNTS)
    assert handles and all(fh.closed for fh in handles)


def test_file_closed_after_success(cal_file, monkeypatch):
    handles = _track_open(monkeypatch)
    load_calibration(cal_file, "b", 1, counts=COUNTS, strict=False)
    load_calibration_table(cal_file, counts=COUNTS)
    assert len(handles) == 2
    assert all(fh.closed for fh in handles)


@pytest.mark.parametrize(
    "kind,number",
    [("x", 1), ("b", 0), ("v", -2), ("b", 1.9), ("b", 2.0), ("b", "1"), ("b", True)],
)
def test_invalid_request_rejected(cal_file, kind, number):
    with pytest.raises(ValueError):
        load_calibration(cal_file, kind, number, counts=COUNTS)


def test_table_has_one_row_per_tag(cal_file):
    df = load_calibration_table(cal_file, counts=COUNTS)
    assert list(df.columns) == ["tag", *FIELD_NAMES]
    assert df.shape[0] == 40
    assert df["tag"].tolist() == tag_universe(COUNTS)
    assert df.loc[df["tag"] == "v31", "length"].item() == _values(39)[8]


def test_table_rejects_invalid_file(tmp_path):
    lines = _lines(tag_universe(COUNTS))
    lines[0], lines[1] = lines[1], lines[0]
    p = _write(tmp_path / "swapped.txt", lines)
    with pytest.raises(InvalidCalibrationFile):
        load_calibration_table(p, counts=COUNTS)


def test_table_lookup_only_requires_every_tag(tmp_path):
    p = _write(tmp_path / "partial.txt", _lines(tag_universe(COUNTS)[:-1]))
    with pytest.raises(ElementNotFound):
        load_calibration_table(p, counts=COUNTS, strict=False)


def test_format_record_reparses_exactly(tmp_path):
    rec = CalibrationRecord("b1", *_values(3))
    p = _write(tmp_path / "one.txt", [format_record(rec)])
    assert load_calibration(p, "b", 1, counts=COUNTS, strict=False) == rec


def test_bundled_sample_files_validate():
    root = Path(__file__).resolve().parents[1]
    for cfg in DETECTOR_CONFIG.values():
        df = load_calibration_table(root / cfg["calibration_path"], counts=cfg["counts"])
        assert df.shape[0] == cfg["counts"].total
