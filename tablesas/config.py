"""
Configuration settings for the scoped table-storage client
"""
import os
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings loaded from environment variables"""

    # 연결 문자열 (계정 키 또는 UseDevelopmentStorage=true)
    storage_connection_string: Optional[str] = os.getenv("STORAGE_CONNECTION_STRING", None)

    # 연결 문자열이 없을 때 Azure Identity로 접근할 계정 이름
    table_storage_account: Optional[str] = os.getenv("TABLE_STORAGE_ACCOUNT", None)

    # Service Principal (identity 기반 계정에서만 사용)
    azure_sp_tenant_id: str = os.getenv("AZURE_SP_TENANT_ID", "")
    azure_sp_client_id: str = os.getenv("AZURE_SP_CLIENT_ID", "")
    azure_sp_client_secret: str = os.getenv("AZURE_SP_CLIENT_SECRET", "")

    use_azure_cli_credential: bool = os.getenv("USE_AZURE_CLI_CREDENTIAL", "false").lower() == "true"

    app_name: str = "Scoped Table Storage Client"
    app_version: str = "0.1.0"

    # Logging: "json" for log collectors, "text" for the console demo
    log_format: str = "text"
    log_level: str = "INFO"

    # Azure SDK retry. 0 = no implicit retry; callers decide (see utils.retry)
    azure_retry_total: int = 0
    azure_retry_backoff_factor: float = 0.8

    connection_timeout: float = 20.0
    read_timeout: float = 60.0

    # SAS / stored access policy
    sas_default_ttl_hours: int = 24
    policy_propagation_seconds: float = 30.0

    demo_table_prefix: str = "Customers"
    demo_policy_name: str = "customer-policy"

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}

    @property
    def has_sp_config(self) -> bool:
        """Whether all Service Principal variables are present."""
        return bool(
            self.azure_sp_tenant_id
            and self.azure_sp_client_id
            and self.azure_sp_client_secret
        )


settings = Settings()
