"""エクスポート結果の GitHub Releases への公開。

エクスポートフォルダ 1 つにつきリリース 1 つ（タグはフォルダ名から作る）。
アセットはファイル名（= エクスポート要求の file_name_prefix + 拡張子）で一意に決まり、
再実行時は同名アセットを置き換える。
"""

import logging
import pathlib
import subprocess

from lst_pipeline import config

logger = logging.getLogger(__name__)


class UploadError(RuntimeError):
    """gh CLI の呼び出しが失敗した場合。"""


def _gh(args: list[str]) -> str:
    result = subprocess.run(
        ["gh", *args, "--repo", config.GITHUB_REPO],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise UploadError(f"gh {' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout


def release_tag(folder: str) -> str:
    """エクスポートフォルダ名をリリースタグに変換する（例: "GEE_Exports" → "gee-exports"）。"""
    return folder.lower().replace("_", "-")


def _asset_names(tag: str) -> set[str] | None:
    """リリースのアセット名。リリースが存在しなければ None。"""
    try:
        out = _gh(["release", "view", tag, "--json", "assets", "--jq", ".assets[].name"])
    except UploadError:
        return None
    return {line.strip() for line in out.splitlines() if line.strip()}


def publish(folder: str, *paths: pathlib.Path) -> list[str]:
    """ファイルを folder に対応するリリースへアップロードする。

    リリースがなければ作成し、同名アセットは削除してから上げ直す。

    Returns:
        アップロードしたアセット名のリスト（GITHUB_REPO 未設定なら空）

    Raises:
        UploadError: リリース作成・削除・アップロードのいずれかが失敗した場合
    """
    if not config.GITHUB_REPO:
        logger.warning("[upload] GITHUB_REPO not set, skipping %d files", len(paths))
        return []

    tag = release_tag(folder)
    existing = _asset_names(tag)
    if existing is None:
        logger.info("[upload] creating release %s", tag)
        _gh([
            "release", "create", tag,
            "--title", folder,
            "--notes", f"{config.REGION_NAME} LST / NDVI exports",
        ])
        existing = set()

    uploaded = []
    for path in paths:
        if path.name in existing:
            _gh(["release", "delete-asset", tag, path.name, "--yes"])
        _gh(["release", "upload", tag, str(path)])
        logger.info("[upload] %s -> %s", path.name, tag)
        uploaded.append(path.name)
    return uploaded
