"""
tests/test_query.py

lst_pipeline/query.py のユニットテスト。
pystac_client.Client.open をモックし、ネットワーク不要で検索条件を確認する。

検証項目:
  - [start, end) → STAC datetime 文字列（終了日の前日まで）
  - platform / eo:cloud_cover の query 組み立て
  - 絞り込みなしでは query=None
  - 署名 modifier の指定
"""

from unittest.mock import MagicMock, patch


# ── ヘルパー関数 ────────────────────────────────────────────────────────────────

def _mock_catalog(items: list) -> MagicMock:
    catalog = MagicMock()
    catalog.search.return_value.items.return_value = iter(items)
    return catalog


_BBOX = [-1.1, 37.8, 0.3, 38.9]


# ── datetime_range ──────────────────────────────────────────────────────────────

class TestDatetimeRange:
    def test_end_date_excluded(self):
        from lst_pipeline.query import datetime_range
        assert datetime_range("2020-06-01", "2020-09-21") == "2020-06-01/2020-09-20"

    def test_year_boundary(self):
        from lst_pipeline.query import datetime_range
        assert datetime_range("2014-01-01", "2024-01-01") == "2014-01-01/2023-12-31"


# ── search_items ────────────────────────────────────────────────────────────────

class TestSearchItems:
    def test_platform_and_cloud_filters(self):
        catalog = _mock_catalog(["item-a", "item-b"])
        with patch("pystac_client.Client.open", return_value=catalog) as client_open:
            from lst_pipeline.query import search_items
            items = search_items(
                "landsat-c2-l2",
                _BBOX,
                "2020-06-01/2020-09-20",
                platforms=["landsat-8"],
                max_cloud=20,
            )

        assert items == ["item-a", "item-b"]
        kwargs = catalog.search.call_args.kwargs
        assert kwargs["collections"] == ["landsat-c2-l2"]
        assert kwargs["bbox"] == _BBOX
        assert kwargs["datetime"] == "2020-06-01/2020-09-20"
        assert kwargs["query"] == {
            "platform": {"in": ["landsat-8"]},
            "eo:cloud_cover": {"lt": 20},
        }
        import planetary_computer
        assert client_open.call_args.kwargs["modifier"] is planetary_computer.sign_inplace

    def test_no_filters_sends_no_query(self):
        """platforms / max_cloud とも未指定なら query は送らない。"""
        catalog = _mock_catalog([])
        with patch("pystac_client.Client.open", return_value=catalog):
            from lst_pipeline.query import search_items
            items = search_items("modis-11A2-061", _BBOX, "2014-01-01/2023-12-30")

        assert items == []
        assert catalog.search.call_args.kwargs["query"] is None

    def test_cloud_filter_alone(self):
        catalog = _mock_catalog([])
        with patch("pystac_client.Client.open", return_value=catalog):
            from lst_pipeline.query import search_items
            search_items("landsat-c2-l2", _BBOX, "2020-06-01/2020-09-20", max_cloud=0)

        assert catalog.search.call_args.kwargs["query"] == {"eo:cloud_cover": {"lt": 0}}
