import pytest
import sys

import pandas as pd

from backtest_loop import TimeSeries, InvalidSeriesError

class TestValidate:
    def test_bounds(self):
        s = TimeSeries("candles", [{"t": 1}, {"t": 1}, {"t": 4}], "t")
        assert s.validate() == (1, 4)
        assert s.first_timestamp == 1
        assert s.last_timestamp == 4

    def test_mixed_timestamp_formats(self):
        s = TimeSeries("funding", [{"t": 0}, {"t": "1970-01-01T00:00:01Z"}], "t")
        assert s.validate() == (0, 1000)

    @pytest.mark.parametrize("records, match", [
        ([], "empty"),
        ("abc", "must be a list"),
        ({"t": 1}, "must be a list"),
        (None, "must be a list"),
        ([{"t": 1}, 5], "not a mapping"),
        ([{"t": 1}, {"t": "garbage"}], "record #1"),
        ([{"t": 1}, {"x": 2}], "missing timestamp field"),
        ([{"t": 3}, {"t": 2}], "previous"),
    ])
    def test_invalid(self, records, match):
        with pytest.raises(InvalidSeriesError, match=match):
            TimeSeries("bad", records, "t").validate()

    def test_invalid_name(self):
        with pytest.raises(InvalidSeriesError, match="name"):
            TimeSeries("", [{"t": 1}], "t").validate()
        with pytest.raises(InvalidSeriesError, match="name"):
            TimeSeries(None, [{"t": 1}], "t").validate()

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            TimeSeries("bad", [], "t").validate()


class TestExtend:
    def test_extend_appends(self):
        s = TimeSeries("fills", [{"t": 1}], "t")
        s.validate()
        assert s.extend([{"t": 2}, {"t": 3}]) == 2
        assert len(s) == 3
        assert s.last_timestamp == 3

    def test_extend_rejects_regression(self):
        s = TimeSeries("fills", [{"t": 5}], "t")
        s.validate()
        with pytest.raises(InvalidSeriesError):
            s.extend([{"t": 4}])
        assert len(s) == 1


class TestConstructors:
    def test_from_dataframe(self):
        df = pd.DataFrame({"t": [1, 2, 3], "close": [10.0, 11.0, 12.0]})
        s = TimeSeries.from_dataframe("candles", df, "t")
        assert s.validate() == (1, 3)
        assert s.records[1]["close"] == 11.0
        assert not s.extendable

    def test_from_source_pages(self):
        pages = [[], [{"t": 1}], [{"t": 2}], [{"t": 3}]]
        s = TimeSeries.from_source("paged", pages, "t")
        assert s.extendable
        assert s.records == [{"t": 1}]
        assert s.request_more_data() == [{"t": 2}]
        assert s.request_more_data() == [{"t": 3}]
        assert s.request_more_data() == []

if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
