"""
地表面温度（LST）・NDVI 処理パイプライン エントリーポイント

使用方法:
    python lst_pipeline/main.py --mode all
    python lst_pipeline/main.py --mode landsat --years 2022 2023
    python lst_pipeline/main.py --mode modis --region Valencia
"""

import pathlib
import sys

# `python lst_pipeline/main.py` として実行した場合にプロジェクトルートを sys.path に追加
_project_root = pathlib.Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import argparse
import json
import logging

from tenacity import before_sleep_log, retry, stop_after_attempt, wait_random

from lst_pipeline import config
from lst_pipeline import export, modis, process, query, render, upload
from lst_pipeline.process import YearProducts
from lst_pipeline.region import Region, RegionError, load_region

logger = logging.getLogger(__name__)

# ジョブ実行中に蓄積する欠損レコード（ジョブ開始時にリセット）
_missing_records: list[dict] = []


def record_missing(
    period: int | str,
    product: str,
    reason: str = "unknown",
) -> None:
    """欠損を _missing_records に追記し、output/missing.json を上書き保存する。

    reason の種類:
        no_items         STACアイテムが0件
        no_valid_pixels  マスク後に有効ピクセルなし、または NDVI 範囲が未定義
        process_error    取得・計算中に予期しないエラー
        export_rejected  エクスポート要求の拒否（ピクセル上限超過など）
        render_error     PNG（レイヤ・地図・グラフ）の描画失敗
        upload_error     アップロード失敗
    """
    _missing_records.append({
        "period": period,
        "product": product,
        "reason": reason,
    })
    out_path = pathlib.Path(config.MISSING_LOG)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(_missing_records, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


def _with_retry(fn, *args):
    retrying = retry(
        stop=stop_after_attempt(config.RETRY_ATTEMPTS),
        wait=wait_random(min=config.RETRY_WAIT_MIN, max=config.RETRY_WAIT_MAX),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(fn)(*args)


def compute_one_year(region: Region, year: int) -> YearProducts | None:
    """1年分の Landsat を検索・合成し NDVI / LST を計算する。tenacity でリトライ付き。

    Returns:
        成功時は YearProducts、欠損時は None（理由は record_missing 済み）
    """
    start, end = process.season_window(year)

    try:
        items = _with_retry(
            query.search_items,
            config.LANDSAT_COLLECTION,
            region.bbox,
            query.datetime_range(start, end),
            config.LANDSAT_PLATFORMS,
            config.CLOUD_COVER_MAX,
        )
        if not items:
            record_missing(year, "lst", "no_items")
            return None
        products = _with_retry(process.load_and_compute, items, region, year)
    except Exception as exc:
        logger.error("[main] lst %d: all retries failed: %s", year, exc)
        record_missing(year, "lst", "process_error")
        return None

    if products is None:
        record_missing(year, "lst", "no_valid_pixels")
    return products


def _export(write, raster, request: export.ExportRequest, period, product) -> bool:
    """画像または表を書き出して公開する。失敗は欠損として記録し False を返す。"""
    try:
        path = write(raster, request)
    except export.ExportRejected as exc:
        logger.error("[main] export rejected %s: %s", request.description, exc)
        record_missing(period, product, "export_rejected")
        return False
    except Exception as exc:
        logger.error("[main] export failed %s: %s", request.description, exc)
        record_missing(period, product, "process_error")
        return False
    return _publish(request.folder, path, period, product)


def _publish(folder: str, path: pathlib.Path, period, product) -> bool:
    if not config.GITHUB_REPO:
        return True
    try:
        upload.publish(folder, path)
    except Exception as exc:
        logger.error("[main] upload failed %s: %s", path.name, exc)
        record_missing(period, product, "upload_error")
        return False
    return True


def _render(draw, *args, period, product) -> bool:
    """PNG を描画する。失敗してもエクスポートは続行し、欠損として記録する。"""
    try:
        draw(*args)
    except Exception as exc:
        logger.error("[main] render failed %s %s: %s", product, period, exc)
        record_missing(period, product, "render_error")
        return False
    return True


def export_year(region: Region, products: YearProducts) -> bool:
    """1年分の 3 レイヤを描画し、3 件のエクスポート要求を実行する。"""
    year = products.year
    requests = export.image_export_requests(region.name, year)
    specs = render.layer_specs(region.name, year)
    rasters = {
        "ndvi": products.ndvi,
        "lst": products.lst,
        "true_color": products.true_color,
    }
    layer_dir = pathlib.Path(config.OUTPUT_DIR) / "layers"

    ok = True
    for key, raster in rasters.items():
        png_path = layer_dir / f"{requests[key].file_name_prefix}.png"
        ok = _render(render.save_layer, raster, specs[key], png_path, period=year, product=key) and ok
        ok = _export(export.save_cog, raster, requests[key], year, key) and ok

    for key in ("ndvi", "lst"):
        try:
            export.update_summary(rasters[key], key, year)
        except Exception as exc:
            logger.error("[main] summary update failed %s %d: %s", key, year, exc)
            record_missing(year, key, "process_error")
            ok = False
    return ok


def run_landsat(region: Region, years: list[int]) -> int:
    """年ループ。成功年数を返し、最後に成功した年の LST で凡例付き地図を描く。"""
    success_count = 0
    last: YearProducts | None = None

    for year in years:
        products = compute_one_year(region, year)
        if products is None:
            continue
        if export_year(region, products):
            success_count += 1
        last = products

    if last is not None:
        map_path = (
            pathlib.Path(config.OUTPUT_DIR) / "maps" / f"LST_{region.name}_{last.year}.png"
        )
        _render(
            render.save_map,
            last.lst,
            render.build_legend(),
            render.map_title(region.name, years),
            map_path,
            period=last.year,
            product="map",
        )

    # サマリーも年次画像と同じリリースに置く
    for product in ("ndvi", "lst"):
        for ext in ("csv", "json"):
            path = pathlib.Path(config.OUTPUT_DIR) / f"summary_{product}.{ext}"
            if path.exists():
                _publish(config.EXPORT_FOLDER, path, "summary", product)
    return success_count


def run_modis(region: Region) -> bool:
    """MODIS 平均 LST 画像・地域平均時系列 CSV・グラフ 2 種を出力する。"""
    period = f"{config.MODIS_START[:4]}-{config.MODIS_END[:4]}"

    try:
        items = _with_retry(
            query.search_items,
            config.MODIS_COLLECTION,
            region.bbox,
            query.datetime_range(config.MODIS_START, config.MODIS_END),
        )
        lst = _with_retry(modis.load_lst, items, region) if items else None
    except Exception as exc:
        logger.error("[main] modis %s: all retries failed: %s", period, exc)
        record_missing(period, "modis", "process_error")
        return False
    if lst is None:
        record_missing(period, "modis", "no_items")
        return False

    out_dir = pathlib.Path(config.OUTPUT_DIR)
    mean = modis.mean_composite(lst)
    mean_request = export.modis_mean_request()
    ok = _render(
        render.save_layer,
        mean,
        render.modis_layer_spec(period.replace("-", "–")),
        out_dir / "layers" / f"{mean_request.file_name_prefix}.png",
        period=period,
        product="modis_mean",
    )
    ok = _export(export.save_cog, mean, mean_request, period, "modis_mean") and ok

    table = modis.regional_mean_series(lst)
    table_request = export.modis_table_request(region.name)
    ok = _export(export.export_table, table, table_request, period, "modis_timeseries") and ok

    chart_dir = out_dir / "charts"
    charts = {
        f"MODIS_LST_DOY_{region.name}.png": modis.doy_series_by_year(table, region.name),
        f"MODIS_LST_Series_{region.name}.png": modis.full_series(table),
    }
    for name, spec in charts.items():
        ok = _render(render.save_chart, spec, chart_dir / name, period=period, product="modis_chart") and ok
    return ok


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="地表面温度（LST）・NDVI 処理パイプライン",
    )
    parser.add_argument(
        "--mode",
        choices=["landsat", "modis", "all"],
        default="all",
        help="実行モード",
    )
    parser.add_argument(
        "--years",
        type=int,
        nargs="+",
        default=config.YEARS,
        help="処理対象年。省略時は 2014〜2023",
    )
    parser.add_argument(
        "--region",
        default=config.REGION_NAME,
        help=f"{config.REGION_FIELD} の値",
    )
    parser.add_argument(
        "--boundary",
        default=config.BOUNDARY_PATH,
        help="境界ファイルのパス",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    args = _parse_args(argv)
    _missing_records.clear()

    try:
        region = load_region(args.boundary, config.REGION_FIELD, args.region)
    except (RegionError, OSError) as exc:
        logger.error("[main] region could not be resolved: %s", exc)
        sys.exit(1)

    success_count = 0
    if args.mode in ("landsat", "all"):
        success_count = run_landsat(region, args.years)
    modis_ok = None
    if args.mode in ("modis", "all"):
        modis_ok = run_modis(region)

    # 欠損ファイルが未作成（欠損 0 件）の場合も空配列で作成する
    out_path = pathlib.Path(config.MISSING_LOG)
    if not out_path.exists():
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text("[]", encoding="utf-8")

    # 終了サマリーログ
    logger.info("[main] ===== 処理完了 =====")
    if args.mode in ("landsat", "all"):
        logger.info("[main] 処理年数：%d", len(args.years))
        logger.info("[main] 成功：%d", success_count)
    if modis_ok is not None:
        logger.info("[main] MODIS：%s", "成功" if modis_ok else "欠損あり")
    missing_count = len(_missing_records)
    if missing_count > 0:
        logger.warning("[main] 欠損：%d  → %s を参照", missing_count, config.MISSING_LOG)
    else:
        logger.info("[main] 欠損：0")

    # 欠損があってもexit(0)。ワークフローを失敗扱いにしない。
    sys.exit(0)


if __name__ == "__main__":
    main()
