from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    db_path: str = "workout.db"
    storage_key: str = Field(default="workouts", min_length=1)
    log_level: str = "INFO"
    favorite_limit: int = Field(default=5, ge=0)


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
