"""MODIS MOD11A2（8日合成 LST）の時系列処理。"""

import logging
from dataclasses import dataclass, field

import numpy as np
import odc.stac
import pandas as pd
import pystac
import rioxarray  # noqa: F401 - .rio アクセサを登録
import xarray as xr

from lst_pipeline import config
from lst_pipeline.process import select_window
from lst_pipeline.region import Region

logger = logging.getLogger(__name__)


@dataclass
class ChartSpec:
    """折れ線グラフの描画仕様。series は {凡例名: (x, y)}。"""

    title: str
    x_title: str
    y_title: str
    series: dict[str, tuple[list, list]] = field(default_factory=dict)
    line_width: float = 1.5
    point_size: float = 0.0


def load_lst(items: list[pystac.Item], region: Region) -> xr.DataArray | None:
    """MODIS LST をロードし、摂氏化して対象地域でクリップする。

    Args:
        items: pystac.Item のリスト（1件以上）
        region: 対象地域

    Returns:
        LST [°C] の DataArray（shape: time, y, x）。
        期間 [MODIS_START, MODIS_END) に入るシーンがなければ None。
    """
    ds = odc.stac.load(
        items,
        bands=[config.MODIS_BAND],
        bbox=region.bbox,
        resolution=config.RESOLUTION_MODIS,
        crs=config.CRS,
        chunks={"x": config.CHUNK_SIZE, "y": config.CHUNK_SIZE},
        groupby="solar_day",
        dtype="uint16",
        nodata=config.MODIS_NODATA,
    )
    # 8日合成は期間開始前から始まるものも検索に掛かる
    ds = select_window(ds, config.MODIS_START, config.MODIS_END)
    if ds.sizes["time"] == 0:
        logger.warning("[modis] no scenes inside %s/%s", config.MODIS_START, config.MODIS_END)
        return None
    da = scale_lst(ds[config.MODIS_BAND]).compute()

    if da.rio.crs is None:
        da = da.rio.write_crs(config.CRS)
    da = da.rio.clip(region.geojson(), crs=region.crs, drop=True)

    logger.info("[modis] loaded %d scenes, shape=%s", da.sizes["time"], da.shape)
    return da


def scale_lst(da: xr.DataArray) -> xr.DataArray:
    """LST_Day_1km の DN を摂氏に変換する（DN * 0.02 - 273.15、DN=0 は欠損）。"""
    valid = da != config.MODIS_NODATA
    celsius = da.astype("float32") * config.MODIS_SCALE - config.KELVIN_OFFSET
    return celsius.where(valid).rename(config.MODIS_BAND)


def mean_composite(da: xr.DataArray) -> xr.DataArray:
    """全期間の平均 LST（NaN は無視）。"""
    return da.mean(dim="time", skipna=True, keep_attrs=True).rename("LST_Mean")


def regional_mean_series(da: xr.DataArray) -> pd.DataFrame:
    """シーンごとの地域平均 LST を (date, mean_LST) の表にする。

    全ピクセルがマスクされたシーンも行として残し、mean_LST は NaN とする。
    """
    values = np.asarray(da.values, dtype="float64")
    flat = values.reshape(values.shape[0], -1)
    finite = np.isfinite(flat)
    counts = finite.sum(axis=1)
    sums = np.where(finite, flat, 0.0).sum(axis=1)
    means = np.full(counts.shape, np.nan)
    np.divide(sums, counts, out=means, where=counts > 0)

    empty = int((counts == 0).sum())
    if empty:
        logger.warning("[modis] %d scenes have no valid pixels", empty)

    dates = pd.to_datetime(da["time"].values).strftime("%Y-%m-%d")
    return pd.DataFrame({"date": list(dates), "mean_LST": means})


def doy_series_by_year(table: pd.DataFrame, region_name: str) -> ChartSpec:
    """年ごとに day-of-year を横軸とした季節変化グラフ。"""
    dates = pd.to_datetime(table["date"])
    spec = ChartSpec(
        title=f"Annual Variation of LST in {region_name} (MODIS)",
        x_title="Day of Year",
        y_title="Temperature (°C)",
    )
    for year, group in table.groupby(dates.dt.year):
        doy = pd.to_datetime(group["date"]).dt.dayofyear
        spec.series[str(year)] = (doy.tolist(), group["mean_LST"].tolist())
    return spec


def full_series(table: pd.DataFrame) -> ChartSpec:
    """全期間の時系列グラフ。"""
    dates = pd.to_datetime(table["date"])
    first, last = dates.dt.year.min(), dates.dt.year.max()
    return ChartSpec(
        title=f"Mean LST Over Time ({first}–{last})",
        x_title="Date",
        y_title="Temperature (°C)",
        series={"mean_LST": (dates.tolist(), table["mean_LST"].tolist())},
        line_width=1,
        point_size=3,
    )
