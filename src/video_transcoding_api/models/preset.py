from __future__ import annotations

from pydantic import BaseModel, Field


class VideoPreset(BaseModel):
    profile: str | None = None
    profile_level: str | None = None
    width: int | None = None
    height: int | None = None
    codec: str = "h264"
    bitrate: int | None = Field(default=None, description="Video bitrate in bits per second")
    gop_size: int | None = None
    gop_mode: str | None = Field(default=None, description="'frames' or 'seconds'")
    interlace_mode: str | None = None


class AudioPreset(BaseModel):
    codec: str = "aac"
    bitrate: int | None = Field(default=None, description="Audio bitrate in bits per second")


class Preset(BaseModel):
    name: str
    description: str = ""
    container: str = "mp4"
    rate_control: str | None = None
    two_pass: bool = False
    video: VideoPreset = Field(default_factory=VideoPreset)
    audio: AudioPreset = Field(default_factory=AudioPreset)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "720p_mp4",
                "description": "720p H.264 / AAC",
                "container": "mp4",
                "rate_control": "VBR",
                "video": {
                    "profile": "main",
                    "profile_level": "3.1",
                    "width": 1280,
                    "height": 720,
                    "codec": "h264",
                    "bitrate": 2500000,
                    "gop_size": 90,
                    "gop_mode": "frames",
                    "interlace_mode": "progressive",
                },
                "audio": {"codec": "aac", "bitrate": 128000},
            }
        }


__all__ = ["AudioPreset", "Preset", "VideoPreset"]
