# folderplan/config/schema.py
from pydantic import BaseModel, Field, field_validator


class AppConfig(BaseModel):
    log_level: str = "INFO" # TRACE, DEBUG, INFO, WARNING, ERROR
    log_to_file: bool = True
    # Scanner
    scan_concurrency: int = Field(default=16, ge=1) # Max blocking stat/scandir calls in flight during a scan
    skip_symlinks: bool = False # Symlinks are never followed; this drops them entirely
    # Applier
    backup_name_template: str = ".{name}_backup_{timestamp}" # Sibling of the root folder
    keep_backup_after_restore: bool = True
    make_backup_by_default: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return value

    @field_validator("backup_name_template")
    @classmethod
    def validate_backup_template(cls, value: str) -> str:
        if "{name}" not in value or "{timestamp}" not in value:
            raise ValueError("backup_name_template must contain {name} and {timestamp}")
        if "/" in value or "\\" in value:
            raise ValueError("backup_name_template must be a plain folder name")
        return value
