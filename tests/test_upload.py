"""
tests/test_upload.py

lst_pipeline/upload.py のユニットテスト。
subprocess.run を unittest.mock でモックし、gh CLI を実行せずに呼び出し順を確認する。

検証項目:
  - エクスポートフォルダ名 → リリースタグの変換
  - リリース未作成 → create してから upload
  - 同名アセットあり → delete-asset してから upload
  - gh の失敗は UploadError として送出されること
  - GITHUB_REPO 未設定なら gh を呼ばないこと
"""

import subprocess

import pytest
from unittest.mock import patch


# ── ヘルパー関数 ────────────────────────────────────────────────────────────────

def _done(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr="" if returncode == 0 else "not found"
    )


def _fake_gh(view_result: subprocess.CompletedProcess, fail_on: str | None = None):
    """gh のサブコマンドごとに結果を返す subprocess.run の代役。"""

    def run(cmd, **kwargs):
        sub = cmd[2]
        if sub == "view":
            return view_result
        if sub == fail_on:
            return _done(returncode=1)
        return _done()

    return run


def _subcommands(run_mock) -> list[str]:
    return [c.args[0][2] for c in run_mock.call_args_list]


@pytest.fixture
def repo(monkeypatch):
    import lst_pipeline.config as cfg
    monkeypatch.setattr(cfg, "GITHUB_REPO", "owner/alicante-lst")
    return "owner/alicante-lst"


# ── release_tag ─────────────────────────────────────────────────────────────────

class TestReleaseTag:
    def test_folder_to_tag(self):
        from lst_pipeline.upload import release_tag
        assert release_tag("GEE_Exports") == "gee-exports"

    def test_tag_is_stable(self):
        from lst_pipeline.upload import release_tag
        assert release_tag("GEE_Exports") == release_tag("GEE_Exports")


# ── publish ─────────────────────────────────────────────────────────────────────

class TestPublish:
    def test_creates_release_then_uploads(self, repo, tmp_path):
        path = tmp_path / "LST_Alicante_2020.tif"
        path.touch()
        with patch("subprocess.run", side_effect=_fake_gh(_done(returncode=1))) as run:
            from lst_pipeline.upload import publish
            uploaded = publish("GEE_Exports", path)

        assert uploaded == ["LST_Alicante_2020.tif"]
        assert _subcommands(run) == ["view", "create", "upload"]
        create = run.call_args_list[1].args[0]
        assert create[:4] == ["gh", "release", "create", "gee-exports"]
        assert create[-2:] == ["--repo", repo]

    def test_existing_asset_deleted_before_upload(self, repo, tmp_path):
        path = tmp_path / "NDVI_Alicante_2020.tif"
        path.touch()
        view = _done("NDVI_Alicante_2020.tif\nLST_Alicante_2020.tif\n")
        with patch("subprocess.run", side_effect=_fake_gh(view)) as run:
            from lst_pipeline.upload import publish
            publish("GEE_Exports", path)

        assert _subcommands(run) == ["view", "delete-asset", "upload"]
        delete = run.call_args_list[1].args[0]
        assert delete[3:5] == ["gee-exports", "NDVI_Alicante_2020.tif"]
        upload = run.call_args_list[2].args[0]
        assert upload[3:5] == ["gee-exports", str(path)]

    def test_new_asset_not_deleted(self, repo, tmp_path):
        path = tmp_path / "TrueColor_Alicante_2021.tif"
        path.touch()
        view = _done("NDVI_Alicante_2020.tif\n")
        with patch("subprocess.run", side_effect=_fake_gh(view)) as run:
            from lst_pipeline.upload import publish
            publish("GEE_Exports", path)

        assert _subcommands(run) == ["view", "upload"]

    def test_several_files_share_one_release(self, repo, tmp_path):
        paths = [tmp_path / "summary_lst.csv", tmp_path / "summary_lst.json"]
        for path in paths:
            path.touch()
        with patch("subprocess.run", side_effect=_fake_gh(_done(""))) as run:
            from lst_pipeline.upload import publish
            uploaded = publish("GEE_Exports", *paths)

        assert uploaded == ["summary_lst.csv", "summary_lst.json"]
        assert _subcommands(run) == ["view", "upload", "upload"]

    def test_upload_failure_raises(self, repo, tmp_path):
        path = tmp_path / "LST_Alicante_2020.tif"
        path.touch()
        with patch("subprocess.run", side_effect=_fake_gh(_done(""), fail_on="upload")):
            from lst_pipeline.upload import UploadError, publish
            with pytest.raises(UploadError):
                publish("GEE_Exports", path)

    def test_skipped_without_repo(self, monkeypatch, tmp_path):
        import lst_pipeline.config as cfg
        monkeypatch.setattr(cfg, "GITHUB_REPO", "")
        with patch("subprocess.run") as run:
            from lst_pipeline.upload import publish
            assert publish("GEE_Exports", tmp_path / "x.tif") == []

        run.assert_not_called()
