import logging
import pathlib
from dataclasses import dataclass

import numpy as np
import pandas as pd
import rioxarray  # noqa: F401 - .rio アクセサを登録
import xarray as xr
from rio_cogeo.cogeo import cog_translate
from rio_cogeo.profiles import cog_profiles

from lst_pipeline import config

logger = logging.getLogger(__name__)


class ExportRejected(RuntimeError):
    """エクスポート要求が受け付けられない場合（ピクセル上限超過・空ラスタ等）。"""


@dataclass(frozen=True)
class ExportRequest:
    description: str
    folder: str
    file_name_prefix: str
    scale: int | None = None
    max_pixels: int = config.EXPORT_MAX_PIXELS
    file_format: str = config.EXPORT_FORMAT

    @property
    def suffix(self) -> str:
        return ".csv" if self.file_format == "CSV" else ".tif"

    def output_path(self) -> pathlib.Path:
        return (
            pathlib.Path(config.OUTPUT_DIR)
            / self.folder
            / f"{self.file_name_prefix}{self.suffix}"
        )


def _image_request(name: str, scale: int) -> ExportRequest:
    return ExportRequest(
        description=name,
        folder=config.EXPORT_FOLDER,
        file_name_prefix=name,
        scale=scale,
        max_pixels=config.EXPORT_MAX_PIXELS,
        file_format=config.EXPORT_FORMAT,
    )


def image_export_requests(region_name: str, year: int) -> dict[str, ExportRequest]:
    """1年分の NDVI / LST / 真色合成のエクスポート要求を作る。

    Returns:
        {"ndvi": ..., "lst": ..., "true_color": ...}
    """
    tag = region_name.replace(" ", "_")
    scale = config.RESOLUTION_LANDSAT
    return {
        "ndvi": _image_request(f"NDVI_{tag}_{year}", scale),
        "lst": _image_request(f"LST_{tag}_{year}", scale),
        "true_color": _image_request(f"TrueColor_{tag}_{year}", scale),
    }


def _modis_period() -> str:
    return f"{config.MODIS_START[:4]}_{config.MODIS_END[:4]}"


def modis_mean_request() -> ExportRequest:
    return _image_request(f"MODIS_LST_Mean_{_modis_period()}", config.RESOLUTION_MODIS)


def modis_table_request(region_name: str) -> ExportRequest:
    name = f"MODIS_LST_Timeseries_{region_name.replace(' ', '_')}_{_modis_period()}"
    return ExportRequest(
        description=name,
        folder=config.EXPORT_FOLDER,
        file_name_prefix=name,
        file_format="CSV",
    )


def save_cog(
    raster: xr.DataArray | xr.Dataset,
    request: ExportRequest,
) -> pathlib.Path:
    """ラスタを Cloud Optimized GeoTIFF として保存する。

    Args:
        raster: 単バンド DataArray（y, x）または多バンド Dataset
        request: エクスポート要求

    Returns:
        保存した COG のパス

    Raises:
        ExportRejected: 形式が GeoTIFF でない、空ラスタ、ピクセル上限超過
        各種 I/O エラー（呼び出し元で欠損記録）
    """
    if request.file_format != "GeoTIFF":
        raise ExportRejected(
            f"{request.description}: unsupported image format {request.file_format}"
        )

    da = raster.to_dataarray(dim="band") if isinstance(raster, xr.Dataset) else raster

    # CRS が未設定の場合は明示的に書き込む
    if da.rio.crs is None:
        da = da.rio.write_crs(config.CRS)
    da = da.rio.set_spatial_dims(x_dim="x", y_dim="y")

    if request.scale is not None:
        res_x, _ = da.rio.resolution()
        if not np.isclose(abs(res_x), request.scale):
            da = da.rio.reproject(da.rio.crs, resolution=request.scale)

    pixels = da.sizes["x"] * da.sizes["y"]
    if pixels == 0:
        raise ExportRejected(f"{request.description}: empty raster")
    if pixels > request.max_pixels:
        raise ExportRejected(
            f"{request.description}: {pixels} pixels exceeds max_pixels={request.max_pixels}"
        )

    output_path = request.output_path()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = output_path.with_name(f"_tmp_{output_path.name}")

    try:
        da.rio.to_raster(str(tmp_path), dtype="float32")
        cog_translate(
            str(tmp_path),
            str(output_path),
            cog_profiles.get("deflate"),
            in_memory=False,
            quiet=True,
        )
    finally:
        # 成功・失敗にかかわらず一時ファイルを削除
        if tmp_path.exists():
            tmp_path.unlink()

    size_kb = output_path.stat().st_size / 1024
    logger.info("[export] saved %s (%.0f KB)", output_path, size_kb)
    return output_path


def export_table(df: pd.DataFrame, request: ExportRequest) -> pathlib.Path:
    """表を CSV としてエクスポートする。

    Raises:
        ExportRejected: 形式が CSV でない場合
    """
    if request.file_format != "CSV":
        raise ExportRejected(
            f"{request.description}: unsupported table format {request.file_format}"
        )
    output_path = request.output_path()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    logger.info("[export] saved %s (%d rows)", output_path, len(df))
    return output_path


def update_summary(
    da: xr.DataArray,
    product: str,
    year: int,
) -> None:
    """年次サマリー CSV/JSON を更新（upsert）する。

    Args:
        da: 年次合成 DataArray（shape: y, x）
        product: "ndvi" | "lst"
        year: 対象年
    """
    csv_path = pathlib.Path(config.OUTPUT_DIR) / f"summary_{product}.csv"
    json_path = pathlib.Path(config.OUTPUT_DIR) / f"summary_{product}.json"

    # 出力ディレクトリを作成
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    # 統計値を計算
    values = da.values.astype("float64")
    total_pixels = values.size
    valid_pixels = int(np.isfinite(values).sum())

    new_row = {
        "year": int(year),
        "mean": float(np.nanmean(values)),
        "max": float(np.nanmax(values)),
        "min": float(np.nanmin(values)),
        "valid_ratio": float(valid_pixels / total_pixels) if total_pixels > 0 else 0.0,
    }

    # 既存 CSV を読み込み upsert する（なければ新規行から開始）
    if csv_path.exists():
        df = pd.read_csv(csv_path)
        df = df[df["year"] != year]
        df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
    else:
        df = pd.DataFrame([new_row])
    df = df.sort_values("year").reset_index(drop=True)
    df["year"] = df["year"].astype(int)

    df.to_csv(csv_path, index=False)
    df.to_json(json_path, orient="records", indent=2)

    logger.info("[export] summary updated: %s %d", product, year)
