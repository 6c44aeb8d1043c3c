from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    app_env: str = "development"
    log_level: str = "INFO"
    currency: str = "INR"

    # Quote engine: raise on negative distance/duration instead of pricing them
    reject_negative_trip_inputs: bool = True

    # Payment session: refuse method/instrument changes while a payment is in flight
    lock_instruments_while_processing: bool = False
    seed_demo_instruments: bool = True

    # Simulated PSP
    gateway_latency_seconds: float = 0.5
    gateway_success_rate: float = 0.95
    gateway_timeout_seconds: float = 10.0

    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()
