"""Prometheus メトリクス定義"""

from prometheus_client import Counter, Histogram, Info

# ── アプリケーション情報 ──────────────────────────────
app_info = Info("audit_ledger", "アプリケーション情報")

# ── API メトリクス ────────────────────────────────────
http_requests_total = Counter(
    "http_requests_total",
    "HTTPリクエスト総数",
    ["method", "endpoint", "status_code"],
)

# ── 台帳メトリクス ────────────────────────────────────
ledger_appends_total = Counter(
    "ledger_appends_total",
    "監査レコード追記数",
    ["status"],  # success / conflict / error
)

ledger_append_duration_seconds = Histogram(
    "ledger_append_duration_seconds",
    "追記処理時間（スコープロック保持時間を含む）",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0],
)

ledger_verifications_total = Counter(
    "ledger_verifications_total",
    "チェーン検証実行回数",
    ["result"],  # clean / findings
)

ledger_findings_total = Counter(
    "ledger_findings_total",
    "検出された整合性違反数",
    ["reason"],
)

ledger_records_archived_total = Counter(
    "ledger_records_archived_total",
    "アーカイブ済みレコード数",
)

ledger_immutability_violations_total = Counter(
    "ledger_immutability_violations_total",
    "不変性ガードが拒否した更新・削除の数",
)

# ── ログ転送メトリクス ────────────────────────────────
shipping_events_total = Counter(
    "shipping_events_total",
    "外部ログ転送イベント数",
    ["status"],  # shipped / failed / skipped
)
