"""Configuration models."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AllocationConfig(BaseModel):
    """Address claim polling configuration.

    The defaults suit an allocator that binds claims within a few hundred
    milliseconds. Deployments with a slower allocator must raise both.
    """
    poll_interval: float = Field(default=0.05, gt=0, description="Seconds between claim polls")
    poll_timeout: float = Field(default=0.34, gt=0, description="Seconds to wait for a claim to bind")

    @model_validator(mode="after")
    def validate_interval(self):
        """Validate that at least one poll fits in the deadline."""
        if self.poll_interval > self.poll_timeout:
            raise ValueError(
                f"poll_interval ({self.poll_interval}) exceeds poll_timeout ({self.poll_timeout})"
            )
        return self


class DriverConfig(BaseModel):
    """Main configuration model."""
    model_config = ConfigDict(extra="ignore")

    kubeconfig_path: str = Field(default="/etc/metal/kubeconfig")
    log_level: str = Field(default="INFO")
    field_manager: str = Field(default="metal.ironcore.dev/machine-controller-manager")
    request_timeout: float = Field(default=30.0, gt=0)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()
