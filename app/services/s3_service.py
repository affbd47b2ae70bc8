import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError
from app.config import Settings
from app.errors import StorageError
from app.services.destination import ResolvedDestination
import structlog

logger = structlog.get_logger()


class S3Service:
    def __init__(self, s3_client, bucket_name: str, signed_url_expires_in: int = 604800,
                 cache_control: str = "public, max-age=31536000"):
        self.s3_client = s3_client
        self.bucket_name = bucket_name
        self.signed_url_expires_in = signed_url_expires_in
        self.cache_control = cache_control

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Service":
        s3_client = boto3.client(
            's3',
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url
        )
        return cls(
            s3_client,
            bucket_name=settings.s3_bucket_name,
            signed_url_expires_in=settings.signed_url_expires_in,
            cache_control=settings.cache_control
        )

    def ensure_location(self, destination: ResolvedDestination) -> None:
        # Object keys need no parent folders
        return None

    def save(self, source_path: str, destination: ResolvedDestination,
             content_type: str, uploaded_by: str) -> None:
        """
        Upload a local file to S3 under the destination key.

        Args:
            source_path: Path of the temporary file holding the upload
            destination: Resolved destination; its storage_path is the key
            content_type: The MIME type of the file
            uploaded_by: Caller identifier recorded in object metadata

        Raises:
            StorageError: If the upload fails
        """
        key = destination.storage_path
        try:
            self.s3_client.upload_file(
                source_path,
                self.bucket_name,
                key,
                ExtraArgs={
                    'ContentType': content_type,
                    'CacheControl': self.cache_control,
                    'Metadata': {'uploadedBy': uploaded_by},
                }
            )
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            logger.error(
                "Failed to upload file to S3",
                error=str(e),
                s3_key=key
            )
            raise StorageError(f"Server error: {str(e)}")

        logger.info("Uploaded file to S3", bucket=self.bucket_name, s3_key=key)

    def public_url(self, destination: ResolvedDestination) -> str:
        """
        Generate a long-lived presigned URL for viewing a stored file.

        Args:
            destination: Resolved destination of an uploaded object

        Returns:
            Presigned GET URL for the object
        """
        key = destination.storage_path
        try:
            presigned_url = self.s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': self.bucket_name,
                    'Key': key
                },
                ExpiresIn=self.signed_url_expires_in
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to generate access URL",
                error=str(e),
                s3_key=key
            )
            raise StorageError(f"Server error: {str(e)}")

        logger.info(
            "Generated long-lived access URL",
            s3_key=key,
            presigned_url=presigned_url[:100] + "..."
        )
        return presigned_url
