import logging
from dataclasses import dataclass

import geopandas as gpd
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from lst_pipeline import config

logger = logging.getLogger(__name__)


class RegionError(ValueError):
    """境界ファイルから対象地域を一意に特定できない場合に送出する。"""


@dataclass(frozen=True)
class Region:
    name: str
    geometry: BaseGeometry
    crs: str

    @property
    def bbox(self) -> list[float]:
        """STAC 検索用の [west, south, east, north]（EPSG:4326）。"""
        series = gpd.GeoSeries([self.geometry], crs=self.crs).to_crs("EPSG:4326")
        return [float(v) for v in series.total_bounds]

    def geojson(self) -> list[dict]:
        """rio.clip に渡す GeoJSON ジオメトリのリスト。"""
        return [mapping(self.geometry)]


def load_region(
    path: str | None = None,
    field: str | None = None,
    name: str | None = None,
) -> Region:
    """境界ファイルを読み込み、属性の一致で対象地域を 1 件だけ選択する。

    Args:
        path: ベクタファイル（GeoPackage / Shapefile / GeoJSON）
        field: フィルタ対象の属性名
        name: 属性値

    Returns:
        Region

    Raises:
        RegionError: 属性が存在しない、または一致する地物が 1 件でない場合
    """
    path = path or config.BOUNDARY_PATH
    field = field or config.REGION_FIELD
    name = name or config.REGION_NAME

    gdf = gpd.read_file(path)
    if field not in gdf.columns:
        raise RegionError(f"field {field!r} not found in {path}")

    matched = gdf[gdf[field] == name]
    if len(matched) != 1:
        raise RegionError(
            f"{field} == {name!r} matched {len(matched)} features in {path}, expected 1"
        )

    if matched.crs is None:
        logger.warning("[region] %s has no CRS, assuming EPSG:4326", path)
        matched = matched.set_crs("EPSG:4326")

    region = Region(
        name=name,
        geometry=matched.geometry.iloc[0],
        crs=matched.crs.to_string(),
    )
    logger.info("[region] %s loaded (bbox=%s)", name, region.bbox)
    return region
