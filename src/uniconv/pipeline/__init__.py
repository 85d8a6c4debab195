"""Conversion pipelines."""

from uniconv.pipeline.convert import convert_media, plan_conversion, prepare_request
from uniconv.pipeline.gif import images_to_gif, video_to_gif

__all__ = ["convert_media", "plan_conversion", "prepare_request", "images_to_gif", "video_to_gif"]
