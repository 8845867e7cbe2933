"""
Tests for table normalization and date handling.
"""

from datetime import date, datetime

import pandas as pd
import pytest

from sheetdash.data import (
    coerce_cell,
    format_short_date,
    normalize_table,
    parse_date,
    parse_date_series,
    resolve_now,
    table_fields,
)


class TestNormalizeTable:
    def test_renames_labels_and_fills_missing_fields(self):
        rows = [
            {"編號": "M001", "主題": "審查會", "狀態": "待處理", "指派日期": datetime(2025, 1, 6), "雜項": "x"},
        ]
        df = normalize_table("meetings", rows)

        assert list(df.columns) == table_fields("meetings")
        record = df.to_dict(orient="records")[0]
        assert record["id"] == "M001"
        assert record["title"] == "審查會"
        assert record["assign_date"] == "2025-01-06"
        assert record["note"] == ""
        assert "雜項" not in df.columns

    def test_empty_rows_give_full_column_set(self):
        df = normalize_table("todos", [])
        assert df.empty
        assert list(df.columns) == table_fields("todos")

    def test_numbers_are_rendered_without_float_noise(self):
        df = normalize_table("todos", [{"待辦編號": 12.0, "待辦事項": "整理", "優先級": "高"}])
        assert df.loc[0, "id"] == "12"

    def test_missing_enabled_column_means_enabled(self):
        df = normalize_table("organizations", [{"單位全銜": "勞動部"}])
        assert df.loc[0, "enabled"] == "是"

    def test_enabled_column_kept_when_present(self):
        df = normalize_table("staff", [{"姓名": "陳", "啟用": "否"}, {"姓名": "林", "啟用": ""}])
        assert df["enabled"].tolist() == ["否", ""]


class TestCoerceCell:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, ""),
            ("  text ", "text"),
            ("nan", ""),
            (3.5, "3.5"),
            (float("nan"), ""),
            (datetime(2025, 3, 1, 9, 30), "2025-03-01 09:30:00"),
            (date(2025, 3, 1), "2025-03-01"),
            (pd.NaT, ""),
        ],
    )
    def test_values(self, value, expected):
        assert coerce_cell(value) == expected


class TestParseDate:
    def test_parses_common_formats(self):
        assert parse_date("2025-01-15") == pd.Timestamp("2025-01-15")
        assert parse_date("2025/1/5") == pd.Timestamp("2025-01-05")
        assert parse_date("2025年1月5日") == pd.Timestamp("2025-01-05")
        assert parse_date(datetime(2025, 1, 5, 8)) == pd.Timestamp("2025-01-05 08:00")

    @pytest.mark.parametrize("value", ["", "   ", "不明", "2025-13-45", "N/A", None, 42])
    def test_unparseable_is_nat(self, value):
        assert pd.isna(parse_date(value))

    def test_aware_values_are_converted_to_target_zone(self):
        ts = parse_date("2025-01-15T00:00:00Z", tz="Asia/Taipei")
        assert ts == pd.Timestamp("2025-01-15 08:00")
        assert ts.tzinfo is None

    def test_series_keeps_index_and_marks_bad_values(self):
        s = pd.Series(["2025-01-01", "garbage", ""], index=[5, 6, 7])
        parsed = parse_date_series(s)
        assert list(parsed.index) == [5, 6, 7]
        assert parsed.notna().tolist() == [True, False, False]

    def test_empty_series(self):
        parsed = parse_date_series(pd.Series([], dtype=object))
        assert parsed.empty

    def test_resolve_now_rejects_garbage(self):
        with pytest.raises(ValueError):
            resolve_now("not a time")
        assert resolve_now("2025-01-15") == pd.Timestamp("2025-01-15")


class TestFormatShortDate:
    def test_month_day(self):
        assert format_short_date("2025-01-05") == "1/5"

    def test_unparseable_is_returned_as_is(self):
        assert format_short_date("下週") == "下週"

    def test_empty(self):
        assert format_short_date("") == ""
