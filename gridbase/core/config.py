from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./gridbase.db"
    debug: bool = True
    log_level: str = "INFO"

    # Import pipeline
    import_batch_size: int = 100
    import_sample_size: int = 200         # Non-empty values sampled per column for type inference
    import_sample_backfill: int = 20      # Leading values always included in the sample
    import_type_threshold: float = 0.4    # Fraction of samples a pattern must match
    import_choice_limit: int = 100        # Max generated choices for select fields
    import_max_columns: int = 200
    dedupe_within_file: bool = False

    # Schema read-after-write lag handling
    field_visibility_attempts: int = 10
    field_visibility_base_delay_seconds: float = 0.5
    field_visibility_step_seconds: float = 0.5

    # Date parsing bounds
    date_year_min: int = 1900
    date_year_max: int = 2100

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
