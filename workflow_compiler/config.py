# workflow_compiler/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Workflow Compiler"

    # Generated module surface
    entrypoint_name: str = Field(default="run_workflow")
    input_model_name: str = Field(default="WorkflowInput")
    default_reasoning_effort: str = Field(default="low")

    log_level: str = Field(default="WARNING")
    log_json: bool = Field(default=False)

    class Config:
        env_prefix = "WORKFLOW_COMPILER_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
