"""
tests/test_region.py

lst_pipeline/region.py のユニットテスト。
geopandas.read_file をモックし、境界ファイルなしで実行できる。

検証項目:
  - 属性の一致が 1 件のときだけ Region を返すこと
  - 0 件・複数件・属性なしで RegionError
  - bbox が EPSG:4326 で返ること
"""

import geopandas as gpd
import pytest
from shapely.geometry import box
from unittest.mock import patch


# ── ヘルパー関数 ────────────────────────────────────────────────────────────────

def _make_boundaries(names_2: list[str]) -> gpd.GeoDataFrame:
    """GADM Level 2 風の GeoDataFrame。県ごとに 1 度ずつずらした矩形。"""
    geoms = [box(-1.0 + i, 38.0, -0.5 + i, 38.8) for i in range(len(names_2))]
    return gpd.GeoDataFrame(
        {
            "NAME_1": ["Comunidad Valenciana"] * len(names_2),
            "NAME_2": names_2,
        },
        geometry=geoms,
        crs="EPSG:4326",
    )


class TestLoadRegion:
    def test_single_match(self):
        gdf = _make_boundaries(["Alicante", "Valencia", "Castellón"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import load_region
            region = load_region("boundaries.gpkg", "NAME_2", "Alicante")

        assert region.name == "Alicante"
        assert region.crs == "EPSG:4326"
        assert region.bbox == pytest.approx([-1.0, 38.0, -0.5, 38.8])

    def test_geojson_for_clip(self):
        gdf = _make_boundaries(["Alicante"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import load_region
            region = load_region("boundaries.gpkg", "NAME_2", "Alicante")

        shapes = region.geojson()
        assert len(shapes) == 1
        assert shapes[0]["type"] == "Polygon"

    def test_no_match_raises(self):
        gdf = _make_boundaries(["Valencia", "Castellón"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import RegionError, load_region
            with pytest.raises(RegionError, match="matched 0 features"):
                load_region("boundaries.gpkg", "NAME_2", "Alicante")

    def test_multiple_matches_raise(self):
        gdf = _make_boundaries(["Alicante", "Alicante"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import RegionError, load_region
            with pytest.raises(RegionError, match="matched 2 features"):
                load_region("boundaries.gpkg", "NAME_2", "Alicante")

    def test_level1_name_does_not_match_province(self):
        """NAME_1 は自治州名のため、"Alicante" では一致しない。"""
        gdf = _make_boundaries(["Alicante"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import RegionError, load_region
            with pytest.raises(RegionError):
                load_region("boundaries.gpkg", "NAME_1", "Alicante")

    def test_missing_field_raises(self):
        gdf = _make_boundaries(["Alicante"])
        with patch("geopandas.read_file", return_value=gdf):
            from lst_pipeline.region import RegionError, load_region
            with pytest.raises(RegionError, match="not found"):
                load_region("boundaries.gpkg", "NAME_3", "Alicante")

    def test_defaults_from_config(self, monkeypatch):
        import lst_pipeline.config as cfg
        monkeypatch.setattr(cfg, "REGION_NAME", "Valencia")

        gdf = _make_boundaries(["Alicante", "Valencia"])
        with patch("geopandas.read_file", return_value=gdf) as mock:
            from lst_pipeline.region import load_region
            region = load_region()

        mock.assert_called_once_with(cfg.BOUNDARY_PATH)
        assert region.name == "Valencia"
