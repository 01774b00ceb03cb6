from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "BATTERYSIM_", "case_sensitive": False}

    # Runtime
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Simulation
    progress_interval_hours: int = 730

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
