from pathlib import Path
from io import BytesIO

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

from config import AWS_REGION, EXPORT_FOLDER, S3_BUCKET
from logger import get_logger

log = get_logger(__name__)


def get_s3_client():
    return boto3.client("s3", region_name=AWS_REGION)


def _local_root(folder: str) -> Path:
    return Path(EXPORT_FOLDER) / folder


def save_file(file_name: str, data: bytes | pd.DataFrame, folder: str = "transactions", bucket: str | None = S3_BUCKET):
    """
    Saves an export to either local disk or S3.
    """
    if isinstance(data, pd.DataFrame):
        body = data.to_csv(index=False).encode("utf-8")
    else:
        body = data

    if bucket:
        s3 = get_s3_client()
        key = f"{folder}/{file_name}"
        try:
            s3.put_object(Bucket=bucket, Key=key, Body=body)
            return True
        except (BotoCoreError, ClientError) as e:
            log.error("S3 upload failed", operation="save_export", key=key, err=str(e))
            return False

    # Local fallback
    local_path = _local_root(folder) / file_name
    local_path.parent.mkdir(parents=True, exist_ok=True)
    with open(local_path, "wb") as f:
        f.write(body)
    return True

def load_file(file_name: str, folder: str = "transactions", bucket: str | None = S3_BUCKET) -> pd.DataFrame | None:
    """
    Loads an exported CSV from either local disk or S3.
    """
    if bucket:
        s3 = get_s3_client()
        key = f"{folder}/{file_name}"
        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
            return pd.read_csv(BytesIO(obj["Body"].read()))
        except s3.exceptions.NoSuchKey:
            return None
        except (BotoCoreError, ClientError) as e:
            log.error("S3 download failed", operation="load_export", key=key, err=str(e))
            return None

    local_path = _local_root(folder) / file_name
    if local_path.exists():
        return pd.read_csv(local_path)
    return None

def list_files(folder: str = "transactions", bucket: str | None = S3_BUCKET) -> list[str]:
    """
    Lists exports in a folder (Local or S3).
    """
    if bucket:
        s3 = get_s3_client()
        try:
            response = s3.list_objects_v2(Bucket=bucket, Prefix=f"{folder}/")
            return [obj["Key"].split("/")[-1] for obj in response.get("Contents", [])]
        except (BotoCoreError, ClientError) as e:
            log.error("S3 listing failed", operation="list_exports", err=str(e))
            return []

    local_path = _local_root(folder)
    if local_path.exists():
        return sorted(f.name for f in local_path.glob("*") if f.is_file())
    return []
