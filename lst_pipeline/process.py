import logging
from dataclasses import dataclass

import numpy as np
import odc.stac
import pandas as pd
import pystac
import rioxarray  # noqa: F401 - .rio アクセサを登録
import xarray as xr

from lst_pipeline import config
from lst_pipeline.region import Region

logger = logging.getLogger(__name__)


@dataclass
class YearProducts:
    """1年分の合成結果。ラスタはすべて対象地域でクリップ済み。"""

    year: int
    ndvi: xr.DataArray
    lst: xr.DataArray
    true_color: xr.Dataset
    ndvi_min: float
    ndvi_max: float


def season_window(year: int) -> tuple[str, str]:
    """夏季ウィンドウ [6/1, 9/21) を ISO 日付の組で返す。終了日は含まない。"""
    sm, sd = config.SEASON_START
    em, ed = config.SEASON_END
    return f"{year:04d}-{sm:02d}-{sd:02d}", f"{year:04d}-{em:02d}-{ed:02d}"


def load_and_compute(
    items: list[pystac.Item],
    region: Region,
    year: int,
) -> YearProducts | None:
    """STACアイテムをロードし、夏季中央値合成から NDVI / LST を計算する。

    Args:
        items: pystac.Item のリスト（1件以上）
        region: 対象地域
        year: 対象年

    Returns:
        YearProducts。有効ピクセルがゼロ、または NDVI 範囲が定義できない場合は None。

    Raises:
        各種処理エラー（呼び出し元の tenacity でリトライ）
    """
    start, end = season_window(year)
    ds = select_window(load_landsat(items, region), start, end)
    if ds.sizes["time"] == 0:
        logger.warning("[process] lst %d: no scenes inside %s/%s", year, start, end)
        return None
    composite = composite_year(ds, region)
    return compute_year(composite, year, region.name)


def load_landsat(items: list[pystac.Item], region: Region) -> xr.Dataset:
    return odc.stac.load(
        items,
        bands=config.LANDSAT_BANDS,
        bbox=region.bbox,
        resolution=config.RESOLUTION_LANDSAT,
        crs=config.CRS,
        chunks={"x": config.CHUNK_SIZE, "y": config.CHUNK_SIZE},
        groupby="solar_day",
        dtype="uint16",
        nodata=config.LANDSAT_NODATA,
    )


# ── シーン単位の変換 ─────────────────────────────────────

def select_window(obj, start: str, end: str):
    """time 座標を [start, end) に絞り込む。

    検索結果にはウィンドウ境界をまたぐ合成期間のシーンが混ざるため、
    ロード後のシーン日付で改めて判定する。
    """
    times = pd.to_datetime(obj["time"].values)
    keep = (times >= pd.Timestamp(start)) & (times < pd.Timestamp(end))
    dropped = int((~keep).sum())
    if dropped:
        logger.info("[process] dropped %d scenes outside %s/%s", dropped, start, end)
    return obj.isel(time=np.flatnonzero(keep))


def mask_nodata(ds: xr.Dataset) -> xr.Dataset:
    """光学・熱バンドの nodata（DN=0）を NaN 化し float32 に変換する。"""
    ds = ds.copy()
    for band in _present(ds, config.OPTICAL_BANDS + config.THERMAL_BANDS):
        ds[band] = ds[band].where(ds[band] != config.LANDSAT_NODATA).astype("float32")
    return ds


def apply_scale_factors(ds: xr.Dataset) -> xr.Dataset:
    """Collection 2 Level 2 のスケール係数を適用する（同名バンドを置き換え）。

    光学バンド: DN * 0.0000275 - 0.2（反射率）
    熱バンド:   DN * 0.00341802 + 149.0（輝度温度 [K]）
    QA バンドはそのまま残す。
    """
    ds = ds.copy()
    for band in _present(ds, config.OPTICAL_BANDS):
        ds[band] = ds[band] * config.SR_SCALE + config.SR_OFFSET
    for band in _present(ds, config.THERMAL_BANDS):
        ds[band] = ds[band] * config.ST_SCALE + config.ST_OFFSET
    return ds


def cloud_mask(qa: xr.DataArray) -> xr.DataArray:
    """QA_PIXEL の bit 3（雲影）と bit 5（雲）がどちらも 0 のとき True。"""
    shadow = 1 << config.CLOUD_SHADOW_BIT
    cloud = 1 << config.CLOUD_BIT
    return ((qa & shadow) == 0) & ((qa & cloud) == 0)


def apply_cloud_mask(ds: xr.Dataset) -> xr.Dataset:
    """雲・雲影ピクセルを全測定バンドで NaN 化する。"""
    valid = cloud_mask(ds[config.QA_BAND])
    ds = ds.copy()
    for band in list(ds.data_vars):
        if band != config.QA_BAND:
            ds[band] = ds[band].where(valid)
    return ds


def composite_year(ds: xr.Dataset, region: Region) -> xr.Dataset:
    """nodata・スケール・雲マスクを適用し、中央値合成して対象地域でクリップする。"""
    ds = apply_cloud_mask(apply_scale_factors(mask_nodata(ds)))
    ds = ds.drop_vars(config.QA_BAND, errors="ignore")

    # 時間方向の中央値は time が 1 チャンクである必要がある
    composite = ds.chunk({"time": -1}).median(dim="time", skipna=True).compute()

    if composite.rio.crs is None:
        composite = composite.rio.write_crs(config.CRS)
    return composite.rio.clip(region.geojson(), crs=region.crs, drop=True)


# ── 指標計算 ─────────────────────────────────────────────

def compute_ndvi(composite: xr.Dataset) -> xr.DataArray:
    """NDVI = (nir - red) / (nir + red)

    [-1, 1] に収まらない値（nir + red = 0 の ±inf や負の反射率由来）は NaN とする。
    """
    nir = composite["nir08"]
    red = composite["red"]
    ndvi = (nir - red) / (nir + red)
    return ndvi.where((ndvi >= -1) & (ndvi <= 1)).rename("NDVI")


def ndvi_range(ndvi: xr.DataArray, year: int) -> tuple[float, float] | None:
    """地域全体の NDVI 最小値・最大値を返す。

    有効ピクセルがない、または min == max で正規化できない場合は None。
    """
    values = np.asarray(ndvi.values, dtype="float64")
    finite = values[np.isfinite(values)]

    if finite.size == 0:
        logger.warning("[process] lst %d: no valid pixels, skipping", year)
        return None

    lo, hi = float(finite.min()), float(finite.max())
    if hi == lo:
        logger.warning(
            "[process] lst %d: NDVI range is degenerate (%.4f), skipping", year, lo
        )
        return None
    return lo, hi


def vegetation_proportion(
    ndvi: xr.DataArray,
    ndvi_min: float,
    ndvi_max: float,
) -> xr.DataArray:
    """植生被覆率 pv = ((NDVI - min) / (max - min))^2"""
    return (((ndvi - ndvi_min) / (ndvi_max - ndvi_min)) ** 2).rename("PV")


def emissivity(
    ndvi: xr.DataArray,
    ndvi_min: float,
    ndvi_max: float,
) -> xr.DataArray:
    """地表面放射率 em = 0.986 + 0.004 * pv"""
    pv = vegetation_proportion(ndvi, ndvi_min, ndvi_max)
    return (pv * config.EMISSIVITY_VEG_DELTA + config.EMISSIVITY_SOIL).rename("EM")


def land_surface_temperature(tb, em):
    """輝度温度 TB [K] と放射率から LST [°C] を求める。

    LST = TB / (1 + (λ * TB / ρ) * ln(em)) - 273.15

    DataArray でもスカラーでも動作する。
    """
    correction = 1 + (config.LST_WAVELENGTH * (tb / config.LST_RHO)) * np.log(em)
    return tb / correction - config.KELVIN_OFFSET


def compute_year(
    composite: xr.Dataset,
    year: int,
    region_name: str,
) -> YearProducts | None:
    """合成画像から NDVI / 放射率 / LST を計算する。リモート依存のない純粋関数。"""
    ndvi = compute_ndvi(composite)
    bounds = ndvi_range(ndvi, year)
    if bounds is None:
        return None
    ndvi_min, ndvi_max = bounds

    em = emissivity(ndvi, ndvi_min, ndvi_max)
    thermal = composite[config.THERMAL_BANDS[0]]
    lst = land_surface_temperature(thermal, em).rename(f"LST {region_name} {year}")

    valid_ratio = float(np.isfinite(lst.values).sum()) / lst.size
    logger.info(
        "[process] lst %d: computed (ndvi=[%.3f, %.3f], valid_ratio=%.1f%%)",
        year,
        ndvi_min,
        ndvi_max,
        valid_ratio * 100,
    )
    return YearProducts(
        year=year,
        ndvi=ndvi,
        lst=lst,
        true_color=composite[config.TRUE_COLOR_BANDS],
        ndvi_min=ndvi_min,
        ndvi_max=ndvi_max,
    )


def _present(ds: xr.Dataset, bands: list[str]) -> list[str]:
    return [b for b in bands if b in ds.data_vars]
