from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    public_base_url: Optional[str] = None  # defaults to http://localhost:<port>
    log_level: str = "INFO"

    # Local storage layout
    uploads_dir: str = "uploads"
    profile_folder: str = "profile-images"
    document_folder: str = "application-docs"
    document_marker: str = "-doc-"
    default_caller_id: str = "unknown"
    tmp_dir: Optional[str] = None
    max_upload_bytes: int = 10 * 1024 * 1024

    # CORS
    cors_origins: List[str] = ["http://127.0.0.1:5500", "http://localhost:5500"]
    function_cors_origin: str = "*"
    function_cors_max_age: int = 3600

    # Cloud function storage: "s3" or "local"
    storage_backend: str = "s3"
    aws_access_key_id: str = "placeholder"
    aws_secret_access_key: str = "placeholder"
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "placeholder-bucket"
    s3_endpoint_url: Optional[str] = None
    signed_url_expires_in: int = 604800  # 7 days, the SigV4 maximum
    cache_control: str = "public, max-age=31536000"

    # ID token verification
    auth_jwt_secret: Optional[str] = None
    auth_jwks_url: Optional[str] = None
    auth_algorithms: List[str] = ["HS256"]
    auth_audience: Optional[str] = None
    auth_issuer: Optional[str] = None

    class Config:
        env_file = ".env"

    @property
    def base_url(self) -> str:
        return (self.public_base_url or f"http://localhost:{self.port}").rstrip("/")


settings = Settings()
