"""
Pydantic models for settings, declarative pipelines and run reports.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from lazy import ProducerError

Number = Union[int, float]


class PipelineSpecError(ProducerError, ValueError):
    """Raised when a pipeline description can't be built."""
    pass


class Representation(str, Enum):
    """Which producer form a pipeline is built in."""
    OBJECT = "object"
    CALLABLE = "callable"


class OperationType(str, Enum):
    BOUND = "bound"
    FILTER = "filter"


class LazySettings(BaseModel):
    """Runtime settings, usually read from the environment."""
    log_level: str = Field(
        default="INFO",
        description="Logging level name"
    )
    poll_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="How long a driver waits on a notifier before giving up"
    )
    max_items: Optional[int] = Field(
        default=None,
        ge=1,
        description="Stop draining after this many items"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LazySettings":
        """Build settings from LAZY_LOG_LEVEL, LAZY_POLL_TIMEOUT and LAZY_MAX_ITEMS."""
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        if env.get("LAZY_LOG_LEVEL"):
            values["log_level"] = env["LAZY_LOG_LEVEL"]
        if env.get("LAZY_POLL_TIMEOUT"):
            values["poll_timeout_seconds"] = env["LAZY_POLL_TIMEOUT"]
        if env.get("LAZY_MAX_ITEMS"):
            values["max_items"] = env["LAZY_MAX_ITEMS"]
        return cls(**values)


class RangeParams(BaseModel):
    """Arithmetic progression source."""
    start: Number = Field(..., description="First value (inclusive)")
    end: Number = Field(..., description="Upper limit (exclusive)")
    step: Number = Field(default=1, description="Increment per item")

    @field_validator('step')
    @classmethod
    def validate_step(cls, v):
        # a declared pipeline is drained to the end, so it has to terminate
        if v <= 0:
            raise ValueError("step must be positive")
        return v


class OperationSpec(BaseModel):
    """
    One transformer in a pipeline.

    `bound` needs `min` and `max` and takes no modulo rule. `filter` keeps
    items matching every rule given: `min <= v`, `v < max` and
    `v % modulo == remainder`.
    """
    model_config = ConfigDict(extra="forbid")

    type: OperationType = Field(..., description="Transformer kind")
    min: Optional[Number] = Field(None, description="Inclusive lower limit")
    max: Optional[Number] = Field(None, description="Exclusive upper limit")
    modulo: Optional[int] = Field(None, ge=1, description="Divisor for the modulo rule")
    remainder: int = Field(0, ge=0, description="Expected remainder for the modulo rule")

    @model_validator(mode='after')
    def validate_rules(self):
        if self.type == OperationType.BOUND:
            if self.min is None or self.max is None:
                raise ValueError("bound requires both min and max")
            if self.modulo is not None or self.remainder != 0:
                raise ValueError("bound does not take modulo or remainder")
        elif self.min is None and self.max is None and self.modulo is None:
            raise ValueError("filter requires at least one of min, max, modulo")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not exceed max")
        if self.modulo is not None and self.remainder >= self.modulo:
            raise ValueError("remainder must be smaller than modulo")
        return self


class PipelineSpec(BaseModel):
    """Declarative pipeline: a range source plus transformers in order."""
    model_config = ConfigDict(extra="forbid")

    source: RangeParams
    operations: List[OperationSpec] = Field(default_factory=list)
    representation: Representation = Field(default=Representation.OBJECT)
    limit: Optional[int] = Field(None, ge=1, description="Maximum items to drain")


class PipelineReport(BaseModel):
    """Result of draining a declared pipeline."""
    items: List[Any]
    item_count: int
    representation: Representation
    operations_applied: List[str]
    processing_time_ms: float
    peak_memory_kb: float


class PollReport(BaseModel):
    """What a poll driver observed while draining a poll-capable producer."""
    items: List[Any] = Field(default_factory=list)
    polls: int = 0
    not_ready_count: int = 0
    events: List[str] = Field(default_factory=list, description="ready / not_ready / end, in order")
    finished: bool = False
