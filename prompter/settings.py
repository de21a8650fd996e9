"""Dataset build settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


class DatasetSettings(BaseModel):
    target_sample_rate: int = Field(
        default=int(os.getenv("DATASET_SAMPLE_RATE", "48000")), gt=0
    )
    output_dir: str = Field(default=os.getenv("DATASET_OUTPUT_DIR", "data/datasets"))
    user_code: str = Field(default=os.getenv("DATASET_USER_CODE", ""))
    project_name: str = Field(
        default=os.getenv("DATASET_PROJECT_NAME", "Untitled Project")
    )
    log_level: str = Field(default=os.getenv("DATASET_LOG_LEVEL", "INFO"))
    warn_on_clamp: bool = Field(
        default=os.getenv("DATASET_WARN_ON_CLAMP", "true").lower() in {"1", "true", "yes"}
    )


@lru_cache()
def get_settings() -> DatasetSettings:
    return DatasetSettings()
