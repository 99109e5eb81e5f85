import math
from dataclasses import dataclass

from .errors import ConfigError
from .session import DEFAULT_COMMAND, DEFAULT_HEIGHT, DEFAULT_WIDTH

DEFAULT_TICKS_PER_SECOND = 10
DEFAULT_BYTES_PER_SECOND = 1024
DEFAULT_DURATION = 10.0


@dataclass(frozen=True)
class Config:
    target_id: str
    ticks_per_second: int = DEFAULT_TICKS_PER_SECOND
    bytes_per_second: int = DEFAULT_BYTES_PER_SECOND
    duration: float = DEFAULT_DURATION
    command: str = DEFAULT_COMMAND
    height: int = DEFAULT_HEIGHT
    width: int = DEFAULT_WIDTH

    @property
    def tick_interval(self) -> float:
        return 1.0 / self.ticks_per_second

    @property
    def bytes_per_tick(self) -> int:
        return self.bytes_per_second // self.ticks_per_second

    def validate(self) -> None:
        if not self.target_id:
            raise ConfigError("target_id is required")
        if not self.ticks_per_second > 0:
            raise ConfigError(f"ticks_per_second must be positive, got {self.ticks_per_second}")
        if not self.bytes_per_second > 0:
            raise ConfigError(f"bytes_per_second must be positive, got {self.bytes_per_second}")
        if not (self.duration > 0 and math.isfinite(self.duration)):
            raise ConfigError(f"duration must be a positive number of seconds, got {self.duration}")
        if self.bytes_per_tick < 1:
            raise ConfigError(
                f"bytes_per_second ({self.bytes_per_second}) must be at least "
                f"ticks_per_second ({self.ticks_per_second})"
            )

    @classmethod
    def from_dict(cls, args: dict) -> "Config":
        """Build a Config from tool arguments, filling in defaults."""
        return cls(
            target_id=str(args.get("agent_id") or args.get("target_id") or ""),
            ticks_per_second=int(args.get("ticks_per_second", DEFAULT_TICKS_PER_SECOND)),
            bytes_per_second=int(args.get("bytes_per_second", DEFAULT_BYTES_PER_SECOND)),
            duration=float(args.get("duration", DEFAULT_DURATION)),
            command=args.get("command", DEFAULT_COMMAND),
        )
