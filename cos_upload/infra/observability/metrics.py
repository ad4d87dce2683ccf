from prometheus_client import Counter, Histogram

# 低基数标签：只使用上传策略与结果，不使用对象键
UPLOADS = Counter(
    "cos_uploads_total",
    "Total object uploads",
    ["strategy", "outcome"],
)

UPLOAD_PARTS = Counter(
    "cos_upload_parts_total",
    "Total multipart part uploads",
    ["outcome"],
)

ABORTS = Counter(
    "cos_multipart_aborts_total",
    "Multipart sessions abandoned after a failure",
    ["outcome"],
)

UPLOAD_DURATION = Histogram(
    "cos_upload_duration_seconds",
    "Upload latency in seconds",
    ["strategy"],
)
