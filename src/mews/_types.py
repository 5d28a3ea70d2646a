"""Shared type definitions for mews."""

from typing import Literal

# Normalized event topic
type Topic = Literal["EntryPublish", "EntryUnpublish", "AssetPublish", "AssetUnpublish"]
