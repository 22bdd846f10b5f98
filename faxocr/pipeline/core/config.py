# =============================================================================
# Extraction
# =============================================================================

GEMINI_MODEL = "gemini-3-pro-preview"
GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
EXTRACTION_CONCURRENCY = 3  # Global ceiling across all jobs and pages
DEFAULT_TEMPERATURE = 0.0  # Deterministic extraction
MAX_OUTPUT_TOKENS = 65536
RESPONSE_MIME_TYPE = "application/json"
ERROR_BODY_MAX_CHARS = 500


# =============================================================================
# External Service Timeouts (seconds)
# =============================================================================

GEMINI_REQUEST_TIMEOUT_SECONDS = 180


# =============================================================================
# Retry Configuration
# =============================================================================

GEMINI_MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 1.0  # seconds
BACKOFF_MULTIPLIER = 2
MAX_BACKOFF = 20.0


# =============================================================================
# Rasterization
# =============================================================================

RASTER_SCALE = 2.0  # Render scale relative to 72 dpi
RASTER_DPI = int(72 * RASTER_SCALE)
RASTER_MAX_DIMENSION = 2500  # pixels, longest side
RASTER_QUALITY = 0.8  # 0..1 lossy re-encoding quality
RASTER_FORMAT = "JPEG"
RASTER_CONTENT_TYPE = "image/jpeg"
MAX_PDF_PAGES = 200


# =============================================================================
# Storage layout
# =============================================================================

JOBS_DIR = "jobs"
ITEMS_DIR = "items"
PAGE_IMAGES_DIR = "page_images"
SOURCES_DIR = "sources"
TEMPLATES_DIR = "templates"
HANDLE_PREFIX = "blob:"


# =============================================================================
# Validation Limits
# =============================================================================

MAX_FILE_SIZE_MB = 50
ALLOWED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/tiff",
        "image/webp",
    }
)
BOUNDING_BOX_FIELD = "boundingBox"  # Reserved non-editable column


# =============================================================================
# Export
# =============================================================================

FIXED_CSV_PREFIX = "hokkaido_sanki_ocr"
DYNAMIC_CSV_PREFIX = "ocr_export"
CSV_BOM = "\ufeff"


# =============================================================================
# Progress messages
# =============================================================================

MSG_QUEUED = "待機中..."
MSG_PREPARING = "ファイルを準備中..."
MSG_CONVERTING = "PDFを画像に変換中..."
MSG_RESUMING = "保存済みの画像を読み込み中..."
MSG_PROCESSING = "処理中 0/{total}"
MSG_ANALYZING = "Gemini 3.0 解析中 ({done}/{total} ページ)..."
MSG_COMPLETED = "完了"
MSG_COMPLETED_WITH_FAILURES = "完了 ({failed} ページの解析に失敗)"
MSG_ERROR = "エラー"
MSG_FAILED = "処理に失敗しました"
MSG_RETRY_QUEUED = "再処理待機中..."
MSG_REPROCESSING_PAGE = "ページ {page} を再解析中..."
MSG_REPROCESS_FAILED = "ページ {page} の再解析失敗: {error}"
MSG_INTERRUPTED = "中断されたため再開します..."
