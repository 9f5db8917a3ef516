from juku_admin.utils.csv_parser import (
    decode_csv_bytes,
    detect_encoding,
    generate_csv,
    parse_csv,
    validate_csv_headers,
)


def test_parse_simple_rows():
    result = parse_csv("名前,備考\n英語,メモ\n数学,\n".encode("utf-8"))

    assert result.errors == []
    assert result.encoding == "utf-8"
    assert result.headers == ["名前", "備考"]
    assert result.data == [{"名前": "英語", "備考": "メモ"}, {"名前": "数学", "備考": ""}]


def test_parse_quoted_fields_with_commas_quotes_and_newlines():
    raw = 'name,notes\n"Smith, John","He said ""hi""\nsecond line"\n'.encode("utf-8")
    result = parse_csv(raw)

    assert result.errors == []
    assert result.data == [{"name": "Smith, John", "notes": 'He said "hi"\nsecond line'}]


def test_parse_strips_bom_and_whitespace():
    raw = "\ufeff name , notes \n  a  , b \n".encode("utf-8")
    result = parse_csv(raw)

    assert result.headers == ["name", "notes"]
    assert result.data == [{"name": "a", "notes": "b"}]


def test_parse_skips_blank_and_all_empty_rows():
    result = parse_csv(b"name,notes\n\na,b\n,\n\nc,d\n")

    assert [r["name"] for r in result.data] == ["a", "c"]


def test_parse_pads_short_rows():
    result = parse_csv(b"a,b,c\n1\n")

    assert result.data == [{"a": "1", "b": "", "c": ""}]


def test_parse_drops_extra_fields_on_first_row():
    result = parse_csv("ID,科目名,備考\n,英語,メモ,余分\n,数学,x\n".encode("utf-8"))

    assert result.errors == []
    assert result.data == [
        {"ID": "", "科目名": "英語", "備考": "メモ"},
        {"ID": "", "科目名": "数学", "備考": "x"},
    ]


def test_parse_drops_extra_fields_on_later_row():
    result = parse_csv("ID,科目名,備考\n,英語,メモ\n,数学,x,余分\n".encode("utf-8"))

    assert result.errors == []
    assert result.data[1] == {"ID": "", "科目名": "数学", "備考": "x"}


def test_parse_keeps_leading_zeros():
    result = parse_csv(b"code\n00123\n")

    assert result.data == [{"code": "00123"}]


def test_parse_shift_jis():
    raw = "校舎名,備考\n本校,駅前\n".encode("cp932")
    result = parse_csv(raw)

    assert result.encoding == "shift_jis"
    assert result.data == [{"校舎名": "本校", "備考": "駅前"}]


def test_parse_header_only_returns_no_rows():
    result = parse_csv(b"name,notes\n")

    assert result.errors == []
    assert result.data == []


def test_parse_empty_input():
    result = parse_csv(b"   \n")

    assert result.errors == []
    assert result.data == []


def test_parse_invalid_bytes_reports_error():
    result = parse_csv(b"name\n\x81")

    assert result.data == []
    assert result.errors and result.errors[0]["row"] == 0


def test_detect_encoding():
    assert detect_encoding(b"\xef\xbb\xbfabc") == "utf-8"
    assert detect_encoding("日本語".encode("utf-8")) == "utf-8"
    assert detect_encoding("日本語".encode("cp932")) == "shift_jis"


def test_decode_rejects_unknown_encoding():
    try:
        decode_csv_bytes(b"abc", encoding="latin-1")
    except ValueError as e:
        assert "Unsupported encoding" in str(e)
    else:
        raise AssertionError("expected ValueError")


def test_generate_csv_quotes_and_bom():
    text = generate_csv(
        [{"name": "a,b", "notes": 'say "x"'}, {"name": "plain", "notes": None}],
        ["name", "notes"],
    )

    assert text.startswith("\ufeff")
    lines = text[1:].split("\n")
    assert lines[0] == "name,notes"
    assert lines[1] == '"a,b","say ""x"""'
    assert lines[2] == "plain,"


def test_generate_then_parse_keeps_values():
    rows = [{"名前": "山田, 太郎", "備考": "1行目\n2行目"}]
    parsed = parse_csv(generate_csv(rows, ["名前", "備考"]).encode("utf-8"))

    assert parsed.data == rows


def test_validate_headers_missing_and_unknown():
    ok, errors = validate_csv_headers(["a", "x"], ["a", "b"])

    assert ok is False
    assert errors == ["Missing required columns: b", "Unknown columns: x"]


def test_validate_headers_only_required_must_exist():
    ok, errors = validate_csv_headers(["a"], ["a", "b"], required=["a"])

    assert ok is True
    assert errors == []
