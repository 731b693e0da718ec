import logging

import pandas as pd
import planetary_computer
import pystac
import pystac_client

from lst_pipeline import config

logger = logging.getLogger(__name__)


def datetime_range(start: str, end: str) -> str:
    """[start, end) の期間を STAC の datetime 文字列にする。

    STAC の範囲指定は終了日を含むため、終了日の前日までを検索する。
    """
    last = (pd.Timestamp(end) - pd.Timedelta(days=1)).strftime("%Y-%m-%d")
    return f"{start}/{last}"


def search_items(
    collection: str,
    bbox: list[float],
    datetime_range: str,
    platforms: list[str] | None = None,
    max_cloud: float | None = None,
) -> list[pystac.Item]:
    """STAC API を検索してアイテムリストを返す。

    Args:
        collection: "landsat-c2-l2" または "modis-11A2-061"
        bbox: [west, south, east, north]（EPSG:4326）
        datetime_range: "YYYY-MM-DD/YYYY-MM-DD"
        platforms: platform プロパティの絞り込み（例: ["landsat-8"]）
        max_cloud: eo:cloud_cover 上限（%）。None で絞り込まない

    Returns:
        pystac.Item のリスト（0件の場合は空リスト）

    Raises:
        各種ネットワーク・API エラー（呼び出し元の tenacity でリトライ）
    """
    query = {}
    if platforms:
        query["platform"] = {"in": platforms}
    if max_cloud is not None:
        query["eo:cloud_cover"] = {"lt": max_cloud}

    catalog = pystac_client.Client.open(
        config.STAC_URL,
        modifier=planetary_computer.sign_inplace,
    )
    search = catalog.search(
        collections=[collection],
        bbox=bbox,
        datetime=datetime_range,
        query=query or None,
    )
    items = list(search.items())

    level = logging.WARNING if not items else logging.INFO
    logger.log(
        level,
        "[query] %s %s: %d items found",
        collection,
        datetime_range,
        len(items),
    )
    return items
