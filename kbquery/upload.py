import glob
import logging
from pathlib import Path

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import BlobServiceClient

from kbquery.config import Settings

logger = logging.getLogger(__name__)


def upload_files(settings: Settings, pattern: str, overwrite: bool = False) -> int:
    """Upload local files matching ``pattern`` into the indexed container."""
    blob_service = BlobServiceClient.from_connection_string(
        settings.blob_connection_string
    )
    blob_container = blob_service.get_container_client(settings.container_name)
    if not blob_container.exists():
        blob_container.create_container()

    uploaded = 0
    for filename in glob.glob(pattern):
        blob_name = Path(filename).name
        with open(filename, "rb") as f:
            try:
                blob_container.upload_blob(blob_name, f, overwrite=overwrite)
            except ResourceExistsError:
                logger.info(f"{blob_name} already exists.")
                continue
        logger.info(f"Uploaded {blob_name}")
        uploaded += 1
    print(f"Uploaded {uploaded} file(s) to container {settings.container_name}")
    return uploaded
