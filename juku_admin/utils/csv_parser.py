"""
CSV 読み込み / 書き出し

Excel で保存された CSV は UTF-8 (BOM 付き) か Shift_JIS のどちらかなので、
バイト列から文字コードを判定してから pandas で読み込む。
"""
import csv
import io
import warnings
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Optional

import pandas as pd

Encoding = Literal["utf-8", "shift_jis"]

UTF8_BOM = b"\xef\xbb\xbf"

# Windows で作られる Shift_JIS は実際には cp932 (NEC/IBM 拡張文字を含む)
_CODECS = {"utf-8": "utf-8", "shift_jis": "cp932"}


@dataclass
class ParseResult:
    data: list[dict[str, str]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    encoding: Optional[str] = None

    @property
    def headers(self) -> list[str]:
        return list(self.data[0].keys()) if self.data else []


def detect_encoding(raw: bytes) -> Optional[Encoding]:
    """
    BOM があれば UTF-8
    UTF-8 として厳密にデコードできれば UTF-8
    cp932 としてデコードできれば Shift_JIS
    どちらでもなければ None
    """
    if raw.startswith(UTF8_BOM):
        return "utf-8"
    try:
        raw.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass
    try:
        raw.decode("cp932")
        return "shift_jis"
    except UnicodeDecodeError:
        return None


def decode_csv_bytes(raw: bytes, encoding: str = "auto") -> tuple[str, Encoding]:
    if encoding == "auto":
        detected = detect_encoding(raw)
        if detected is None:
            raise ValueError("Unsupported file encoding (expected UTF-8 or Shift_JIS)")
        encoding = detected
    if encoding not in _CODECS:
        raise ValueError(f"Unsupported encoding: {encoding}")

    text = raw.decode(_CODECS[encoding])
    if text.startswith("\ufeff"):
        text = text[1:]
    return text, encoding


def parse_csv(raw: bytes, encoding: str = "auto") -> ParseResult:
    """
    Parse CSV bytes into a list of row dicts keyed by (trimmed) header.

    Quoted fields may contain commas, doubled quotes and line breaks.
    Blank lines are skipped, short rows are padded with "" and fields beyond
    the header width are dropped.
    Any failure is reported in `errors` with row 0 and no data.
    """
    try:
        text, used = decode_csv_bytes(raw, encoding)
    except (ValueError, UnicodeDecodeError) as e:
        return ParseResult(errors=[{"row": 0, "error": str(e)}])

    if not text.strip():
        return ParseResult(encoding=used)

    try:
        # index_col=False: 列数が多い行を行ラベル扱いせず、余分な列を捨てる
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(text),
                engine="python",
                index_col=False,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        return ParseResult(errors=[{"row": 0, "error": f"Failed to parse CSV file: {e}"}], encoding=used)

    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    rows = [
        {k: str(v).strip() for k, v in rec.items()}
        for rec in df.to_dict(orient="records")
    ]
    # 全列空の行 (",,,") は空行扱い
    rows = [r for r in rows if any(v != "" for v in r.values())]
    return ParseResult(data=rows, encoding=used)


def generate_csv(rows: Iterable[dict[str, Any]], columns: list[str]) -> str:
    """BOM + header + rows; values with comma, quote or newline are quoted."""
    df = pd.DataFrame(list(rows), columns=columns, dtype=object)
    df = df.where(pd.notna(df), "")
    body = df.to_csv(index=False, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    return "\ufeff" + body


def validate_csv_headers(
    actual: list[str],
    expected: list[str],
    required: Optional[list[str]] = None,
) -> tuple[bool, list[str]]:
    """Missing checks `required` (all of `expected` by default); unknown checks `expected`."""
    errors = []
    missing = [h for h in (expected if required is None else required) if h not in actual]
    if missing:
        errors.append(f"Missing required columns: {', '.join(missing)}")
    unknown = [h for h in actual if h not in expected]
    if unknown:
        errors.append(f"Unknown columns: {', '.join(unknown)}")
    return not errors, errors
