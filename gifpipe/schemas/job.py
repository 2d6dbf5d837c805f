"""Pydantic schema for the job descriptor carried over the work bus.

The descriptor is a fixed-shape, frozen record. Stages never mutate the copy
they received; they derive a new one with model_copy() and publish that.
Optional values are empty strings rather than missing keys so every stage
can test for presence the same way.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

CROP_FIELDS = ("crop_x", "crop_y", "crop_width", "crop_height")


class JobDescriptor(BaseModel):
    """One unit of work flowing through the pipeline."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default="", description="Assigned once at submission")
    origin_url: str = Field(description="Source video URL")
    previous_workspace: str = Field(
        default="",
        description="Workspace written by the last completed stage, with trailing separator",
    )
    start: str = Field(default="0", description="Start offset in seconds")
    duration: str = Field(default="", description="Clip length in seconds, empty for whole video")
    crop_x: str = ""
    crop_y: str = ""
    crop_width: str = ""
    crop_height: str = ""

    @model_validator(mode="after")
    def crop_all_or_nothing(self):
        present = [getattr(self, name) != "" for name in CROP_FIELDS]
        if any(present) and not all(present):
            raise ValueError("must pass crop info together")
        return self

    @property
    def has_crop(self) -> bool:
        return self.crop_x != ""
