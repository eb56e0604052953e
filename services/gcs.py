# -*- coding: utf-8 -*-

import os
import json
import base64
from google.cloud import storage

# =========================================================
# LAZY CLIENT
# =========================================================
_client = None


def _get_client():
    global _client
    if _client is not None:
        return _client

    creds_b64 = os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
    if creds_b64:
        creds = json.loads(base64.b64decode(creds_b64))
        _client = storage.Client.from_service_account_info(creds)
    else:
        _client = storage.Client()

    return _client


# =========================================================
# UPLOAD TEXT ARTIFACT
# =========================================================
def upload_text(
    *,
    bucket_name: str,
    content: str,
    destination_path: str,
    content_type: str = "text/plain; charset=utf-8",
) -> dict:
    if not bucket_name:
        raise RuntimeError("GCS_BUCKET_NAME not set")

    client = _get_client()
    bucket = client.bucket(bucket_name)
    blob = bucket.blob(destination_path)

    blob.upload_from_string(content, content_type=content_type)

    return {
        "bucket": bucket_name,
        "blob": destination_path,
        "gcs_uri": f"gs://{bucket_name}/{destination_path}",
    }


# =========================================================
# DELETE PREFIX (RETENTION SWEEP)
# =========================================================
def delete_prefix(*, bucket_name: str, prefix: str) -> int:
    client = _get_client()
    removed = 0
    for blob in client.list_blobs(bucket_name, prefix=prefix):
        blob.delete()
        removed += 1
    return removed
