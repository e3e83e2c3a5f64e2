"""Linking photos to the nearest known place."""

from .resolver import associate_all, associate_photo, resolve_nearest_place

__all__ = ["associate_all", "associate_photo", "resolve_nearest_place"]
