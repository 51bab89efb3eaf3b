"""
Configuration — typed, validated settings from CLI flags, environment and .env.

Uses pydantic-settings so every option can also come from a WECHATPAY_*
environment variable (or a .env file in the working directory):

  WECHATPAY_API_KEY           -k/--key
  WECHATPAY_MERCHANT_ID       -m/--mchid
  WECHATPAY_PRIVATE_KEY_PATH  -f/--privatekey
  WECHATPAY_SERIAL_NO         -s/--serialno
  WECHATPAY_OUTPUT_DIR        -o/--output
  WECHATPAY_BASE_URI          -u/--baseuri

CLI flags are passed as init kwargs and therefore win over the environment.

AppSettings tolerates missing mandatory values (the CLI answers those with
the help text); DownloadOptions is the validated, immutable bundle the
orchestrator consumes.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cert_downloader.railway import ErrorCode, Result

DEFAULT_BASE_URI = "https://api.mch.weixin.qq.com/"

# Mandatory option → CLI flag, used when reporting what is missing.
MANDATORY_FLAGS = {
    "api_key": "--key",
    "merchant_id": "--mchid",
    "private_key_path": "--privatekey",
    "serial_no": "--serialno",
}


class DownloadOptions(BaseModel):
    """
    Validated, immutable input of one download run.

    `api_key` is the 32-byte APIv3 key used as the AES-256-GCM key;
    `private_key_pem` is the merchant's signing key, already read from disk.
    """

    model_config = ConfigDict(frozen=True)

    api_key: SecretStr
    merchant_id: str = Field(min_length=1)
    serial_no: str = Field(min_length=1)
    private_key_pem: SecretStr
    output_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    base_uri: str = DEFAULT_BASE_URI

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, value: SecretStr) -> SecretStr:
        length = len(value.get_secret_value().encode("utf-8"))
        if length != 32:
            raise ValueError(f"APIv3 key must be 32 bytes, got {length}")
        return value

    @field_validator("base_uri")
    @classmethod
    def ensure_trailing_slash(cls, value: str) -> str:
        """Relative request paths are resolved under the base URI."""
        return value if value.endswith("/") else f"{value}/"

    @property
    def api_key_bytes(self) -> bytes:
        return self.api_key.get_secret_value().encode("utf-8")


class AppSettings(BaseSettings):
    """
    Root settings — every CLI option plus the ambient knobs.

    Load order (highest priority first):
      1. CLI flags (init kwargs)
      2. Environment variables (WECHATPAY_ prefix)
      3. .env file
      4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="WECHATPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr | None = None
    merchant_id: str | None = None
    private_key_path: Path | None = None
    serial_no: str | None = None
    output_dir: Path | None = None
    base_uri: str = DEFAULT_BASE_URI

    http_timeout_seconds: float = Field(default=60, gt=0)
    http_trace: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    def missing_mandatory(self) -> list[str]:
        """CLI flags of mandatory options that have no value."""
        return [flag for name, flag in MANDATORY_FLAGS.items() if not getattr(self, name)]

    def to_options(self) -> Result[DownloadOptions]:
        """
        Read the private key file and validate everything into DownloadOptions.

        Returns Failure(VALIDATION_ERROR) when mandatory values are missing and
        Failure(CONFIGURATION_ERROR) when the key file is unreadable or a value
        is rejected by validation.
        """
        missing = self.missing_mandatory()
        if missing:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR,
                f"Missing mandatory options: {', '.join(missing)}",
            )
        key_path = self.private_key_path
        assert key_path is not None  # guaranteed by missing_mandatory
        return Result.from_computation(
            key_path.read_text,
            ErrorCode.CONFIGURATION_ERROR,
            f"Cannot read private key {key_path}",
        ).flat_map(self._build_options)

    def _build_options(self, private_key_pem: str) -> Result[DownloadOptions]:
        fields = {
            "api_key": self.api_key,
            "merchant_id": self.merchant_id,
            "serial_no": self.serial_no,
            "private_key_pem": SecretStr(private_key_pem),
            "base_uri": self.base_uri,
        }
        if self.output_dir is not None:
            fields["output_dir"] = self.output_dir
        try:
            return Result.success(DownloadOptions(**fields))
        except ValidationError as e:
            return Result.failure(ErrorCode.CONFIGURATION_ERROR, f"Invalid options: {e}", e)
