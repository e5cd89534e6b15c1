from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    firebase_credentials_path: str = ""
    firebase_project_id: str = ""
    backup_batch_size: int = 500
    invitation_expiry_days: int = 7
    backup_dir: str = "backend/_backup"

    model_config = {"env_prefix": "GRANJA_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
