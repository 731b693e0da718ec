"""地図レイヤ・凡例・グラフの PNG 描画。"""

import logging
import pathlib
import string
from dataclasses import dataclass

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import xarray as xr
from matplotlib.colors import LinearSegmentedColormap, ListedColormap
from matplotlib.patches import Patch

from lst_pipeline import config
from lst_pipeline.modis import ChartSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayerSpec:
    name: str
    vmin: float
    vmax: float
    palette: tuple[str, ...] = ()
    bands: tuple[str, ...] = ()


@dataclass(frozen=True)
class LegendEntry:
    color: str
    label: str


def _hex(color: str) -> str:
    if len(color) == 6 and all(c in string.hexdigits for c in color):
        return f"#{color}"
    return color


def layer_specs(region_name: str, year: int) -> dict[str, LayerSpec]:
    """1年分の真色合成・NDVI・LST レイヤの表示設定。"""
    return {
        "true_color": LayerSpec(
            name=f"True Color 432 - {year}",
            vmin=config.TRUE_COLOR_VIS["vmin"],
            vmax=config.TRUE_COLOR_VIS["vmax"],
            bands=tuple(config.TRUE_COLOR_BANDS),
        ),
        "ndvi": LayerSpec(
            name=f"NDVI {region_name} - {year}",
            vmin=config.NDVI_VIS["vmin"],
            vmax=config.NDVI_VIS["vmax"],
            palette=tuple(config.NDVI_VIS["palette"]),
        ),
        "lst": LayerSpec(
            name=f"LST - {year}",
            vmin=config.LST_VIS_MIN,
            vmax=config.LST_VIS_MAX,
            palette=tuple(config.LST_PALETTE),
        ),
    }


def modis_layer_spec(period: str) -> LayerSpec:
    return LayerSpec(
        name=f"Mean LST MODIS ({period})",
        vmin=config.MODIS_VIS_MIN,
        vmax=config.MODIS_VIS_MAX,
        palette=tuple(config.LST_PALETTE),
    )


def build_legend(
    vmin: float = config.LST_VIS_MIN,
    vmax: float = config.LST_VIS_MAX,
    palette: list[str] | None = None,
) -> list[LegendEntry]:
    """パレットの各色を vmin〜vmax に等間隔で対応させた凡例を作る。"""
    palette = palette or config.LST_PALETTE
    step = (vmax - vmin) / (len(palette) - 1)
    return [
        LegendEntry(color=_hex(color), label=f"{vmin + i * step:.2f}")
        for i, color in enumerate(palette)
    ]


def map_title(region_name: str, years: list[int]) -> str:
    return f"Land Surface Temperature - {region_name} ({min(years)}–{max(years)})"


def _cmap(palette: tuple[str, ...]):
    colors = [_hex(c) for c in palette]
    # 連続値の NDVI は補間、LST パレットは離散色
    if len(colors) <= 3:
        return LinearSegmentedColormap.from_list("layer", colors)
    return ListedColormap(colors)


def _rgb(raster: xr.Dataset, spec: LayerSpec) -> np.ndarray:
    stack = np.stack([raster[b].values for b in spec.bands], axis=-1).astype("float64")
    rgb = np.clip((stack - spec.vmin) / (spec.vmax - spec.vmin), 0.0, 1.0)
    alpha = np.all(np.isfinite(stack), axis=-1).astype("float64")
    return np.dstack([np.nan_to_num(rgb), alpha])


def save_layer(
    raster: xr.DataArray | xr.Dataset,
    spec: LayerSpec,
    path: pathlib.Path,
) -> pathlib.Path:
    """レイヤを PNG として保存する。Dataset は spec.bands を RGB として描画する。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(8, 8))
    try:
        if spec.bands:
            ax.imshow(_rgb(raster, spec))
        else:
            image = ax.imshow(
                raster.values,
                cmap=_cmap(spec.palette),
                vmin=spec.vmin,
                vmax=spec.vmax,
            )
            fig.colorbar(image, ax=ax, shrink=0.7)
        ax.set_title(spec.name)
        ax.set_axis_off()
        fig.savefig(path, dpi=120, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.info("[render] saved %s", path)
    return path


def save_map(
    lst: xr.DataArray,
    legend: list[LegendEntry],
    title: str,
    path: pathlib.Path,
    vmin: float = config.LST_VIS_MIN,
    vmax: float = config.LST_VIS_MAX,
) -> pathlib.Path:
    """LST レイヤに凡例とタイトルを重ねた地図を保存する。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    colors = [entry.color for entry in legend]

    fig, ax = plt.subplots(figsize=(10, 8))
    try:
        ax.imshow(lst.values, cmap=ListedColormap(colors), vmin=vmin, vmax=vmax)
        ax.set_axis_off()
        fig.suptitle(title, fontsize=20, fontweight="bold")
        handles = [Patch(facecolor=e.color, label=e.label) for e in legend]
        ax.legend(
            handles=handles,
            title="Land Surface Temperature (°C)",
            loc="lower right",
            fontsize=6,
            title_fontsize=9,
            framealpha=1.0,
        )
        fig.savefig(path, dpi=120, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.info("[render] saved %s", path)
    return path


def save_chart(spec: ChartSpec, path: pathlib.Path) -> pathlib.Path:
    """ChartSpec を折れ線グラフとして保存する。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(12, 5))
    try:
        for label, (x, y) in spec.series.items():
            ax.plot(
                x,
                y,
                label=label,
                linewidth=spec.line_width,
                marker="o" if spec.point_size else None,
                markersize=spec.point_size,
            )
        ax.set_title(spec.title, fontsize=14, fontweight="bold")
        ax.set_xlabel(spec.x_title)
        ax.set_ylabel(spec.y_title)
        ax.grid(True, alpha=0.3)
        if len(spec.series) > 1:
            ax.legend(fontsize=8, bbox_to_anchor=(1.01, 1), loc="upper left")
        fig.savefig(path, dpi=120, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.info("[render] saved %s", path)
    return path
