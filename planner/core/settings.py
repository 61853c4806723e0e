# planner/core/settings.py
# Paramètres applicatifs (env + .env) : MongoDB, JWT, moteur de bascule hebdomadaire, logs.

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === App settings ===
    app_name: str = "Weekly Planner"
    app_version: str = "0.1.0"
    environment: str = "development"  # or "production"

    # === MongoDB ===
    mongodb_user: str = ""
    mongodb_password: str = ""
    mongodb_uri_tpl: str = "mongodb://localhost:27017"
    mongodb_db: str = "weekly_planner"
    # Les transactions exigent un replica set ; sinon écriture ordonnée + compare-and-set
    mongodb_transactions: bool = False

    # === JWT (identité fournie par le service d'authentification) ===
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    # === WEEKLY ROLLOVER ===
    rollover_batch_size: int = 25
    rollover_instance_timeout_s: float = 30.0
    max_atomic_writes: int = 500

    # === RETRY ===
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 0.5
    retry_max_delay_s: float = 8.0

    # === LOGS ===
    logs_dir: str = "logs"
    logs_retention_days: int = 30

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def mongodb_uri(self) -> str:
        """Build the full MongoDB URI from template."""
        return self.mongodb_uri_tpl.replace("[[MONGODB_USER]]", self.mongodb_user)\
                                   .replace("[[MONGODB_PASSWORD]]", self.mongodb_password)


@lru_cache
def get_settings() -> Settings:
    """Instance unique des paramètres (chargée au premier appel)."""
    return Settings()
