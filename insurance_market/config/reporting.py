"""Output and logging configuration.

Since:
    Version 0.1.0
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field


class OutputConfig(BaseModel):
    """Output configuration.

    Controls where the persisted event log (and any log file configured in
    :class:`LoggingConfig`) is written.
    """

    output_directory: str = Field(default="outputs", description="Directory for saving results")
    event_log_file: Optional[str] = Field(
        default=None, description="NDJSON event log file name (None=do not persist)"
    )

    @property
    def output_path(self) -> Path:
        """Get output directory as Path object.

        Returns:
            Path object for the output directory.
        """
        return Path(self.output_directory)

    @property
    def event_log_path(self) -> Optional[Path]:
        """Full path of the persisted event log, if one is configured."""
        if self.event_log_file is None:
            return None
        return self.output_path / self.event_log_file


class LoggingConfig(BaseModel):
    """Logging configuration.

    Controls logging behavior including level, output destinations,
    and message formatting.
    """

    enabled: bool = Field(default=True, description="Enable logging")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (None=no file logging)"
    )
    console_output: bool = Field(default=True, description="Log to console")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
