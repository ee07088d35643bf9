# Configuration management

from pydantic_settings import BaseSettings  # type: ignore
from functools import lru_cache


class Settings(BaseSettings):
    # Dataset storage
    dataset_backend: str = "memory"  # memory or sqlite
    storage_path: str = "./datasets"
    sql_echo: bool = False

    # Application
    log_level: str = "INFO"
    log_json: bool = True

    # Schema inference
    schema_sample_rows: int = 3
    max_simple_object_fields: int = 10
    max_nested_scalar_array: int = 5
    unwrap_data_envelope: bool = True

    # Table creation
    create_indexes: bool = True

    # Result summary
    summary_sample_rows: int = 3

    # SQL gateway
    slow_query_threshold_ms: int = 150
    large_result_hint_rows: int = 100

    # Observability
    metrics_enabled: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "JSONSTAGE_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
