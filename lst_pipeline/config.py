import os

# ── 対象地域 ────────────────────────────────────────────
# GADM 4.1 スペイン Level 2（県境界）。NAME_2 が県名
BOUNDARY_PATH = os.environ.get("BOUNDARY_PATH", "data/gadm41_ESP_2.gpkg")
REGION_FIELD  = "NAME_2"
REGION_NAME   = "Alicante"
CRS = "EPSG:32630"                          # UTM Zone 30N（イベリア半島東部）

# ── 時間軸 ──────────────────────────────────────────────
YEARS = list(range(2014, 2024))
# 夏季ウィンドウ（月, 日）。[開始日, 終了日) で終了日は含まない
SEASON_START = (6, 1)
SEASON_END   = (9, 21)

# MODIS の期間も [MODIS_START, MODIS_END) とする
MODIS_START = "2014-01-01"
MODIS_END   = "2023-12-31"

# ── STAC / odc-stac ─────────────────────────────────────
STAC_URL           = "https://planetarycomputer.microsoft.com/api/stac/v1"
LANDSAT_COLLECTION = "landsat-c2-l2"
LANDSAT_PLATFORMS  = ["landsat-8"]
MODIS_COLLECTION   = "modis-11A2-061"
CLOUD_COVER_MAX    = None  # eo:cloud_cover フィルタ上限（%）。None で無効
CHUNK_SIZE         = 2048  # {"x": CHUNK_SIZE, "y": CHUNK_SIZE}
RESOLUTION_LANDSAT = 30
RESOLUTION_MODIS   = 1000

# ── バンド定義 ───────────────────────────────────────────
# SR_B1〜SR_B7
OPTICAL_BANDS = ["coastal", "blue", "green", "red", "nir08", "swir16", "swir22"]
# ST_B10
THERMAL_BANDS = ["lwir11"]
QA_BAND       = "qa_pixel"
LANDSAT_BANDS = OPTICAL_BANDS + THERMAL_BANDS + [QA_BAND]
TRUE_COLOR_BANDS = ["red", "green", "blue"]

MODIS_BAND = "LST_Day_1km"

# ── Landsat C2 L2 スケール係数 ──────────────────────────
SR_SCALE  = 0.0000275
SR_OFFSET = -0.2
ST_SCALE  = 0.00341802
ST_OFFSET = 149.0
LANDSAT_NODATA = 0

# QA_PIXEL ビット
CLOUD_SHADOW_BIT = 3
CLOUD_BIT        = 5

# ── 放射率・LST ──────────────────────────────────────────
EMISSIVITY_SOIL      = 0.986
EMISSIVITY_VEG_DELTA = 0.004
LST_WAVELENGTH  = 0.00115   # 放射輝度の波長 λ [cm]（11.5 µm）
LST_RHO         = 1.438     # ρ = h·c/σ [cm·K]
KELVIN_OFFSET   = 273.15

# ── MODIS スケール係数（LST_Day_1km → 摂氏） ────────────
MODIS_SCALE  = 0.02
MODIS_NODATA = 0

# ── 可視化 ───────────────────────────────────────────────
TRUE_COLOR_VIS = {"vmin": 0.0, "vmax": 0.15}
NDVI_VIS = {"vmin": -1.0, "vmax": 1.0, "palette": ["blue", "white", "green"]}
LST_VIS_MIN = 15
LST_VIS_MAX = 45
MODIS_VIS_MIN = 20.0
MODIS_VIS_MAX = 40.0
LST_PALETTE = [
    "040274", "040281", "0502a3", "0502b8", "0502ce", "0502e6", "0602ff", "235cb1",
    "307ef3", "269db1", "30c8e2", "32d3ef", "3be285", "3ff38f", "86e26f", "3ae237",
    "b5e22e", "d6e21f", "fff705", "ffd611", "ffb613", "ff8b13", "ff6e08", "ff500d",
    "ff0000", "de0101", "c21301", "a71001", "911003",
]

# ── エクスポート ─────────────────────────────────────────
EXPORT_FOLDER     = "GEE_Exports"
EXPORT_MAX_PIXELS = int(1e13)
EXPORT_FORMAT     = "GeoTIFF"

# ── 出力ディレクトリ ─────────────────────────────────────
OUTPUT_DIR  = os.environ.get("OUTPUT_DIR", "output")
MISSING_LOG = os.path.join(OUTPUT_DIR, "missing.json")

# ── GitHub ───────────────────────────────────────────────
GITHUB_REPO   = os.environ.get("GITHUB_REPO", "")    # "owner/repo" 形式
GITHUB_TOKEN  = os.environ.get("GITHUB_TOKEN", "")

# ── リトライ設定 ─────────────────────────────────────────
RETRY_ATTEMPTS   = 3
RETRY_WAIT_MIN   = 10   # 秒
RETRY_WAIT_MAX   = 60   # 秒
