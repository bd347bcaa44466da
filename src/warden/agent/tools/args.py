"""Pydantic argument models for agent tools.

These models serve two purposes:
- Validate the raw ``args`` of a model function call before anything runs.
- Provide the JSON schema sent to the model in the tool declarations.

Browser coordinates are normalized to a 0-999 grid and scaled to the viewport
at execution time.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ExitPlanModeArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plan_path: str = Field(
        ...,
        description="Path to the finalized plan file, inside the plans directory.",
    )


class _CoordinateArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: int = Field(..., ge=0, le=999, description="Horizontal position on a 0-999 grid.")
    y: int = Field(..., ge=0, le=999, description="Vertical position on a 0-999 grid.")


class NavigateArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1, description="Absolute URL to open.")


class ClickAtArgs(_CoordinateArgs):
    pass


class HoverAtArgs(_CoordinateArgs):
    pass


class TypeTextAtArgs(_CoordinateArgs):
    text: str = Field(..., description="Text to type.")
    press_enter: bool = Field(False, description="Press Enter after typing.")
    clear_before_typing: bool = Field(True, description="Select and delete existing text first.")


class ScrollDocumentArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    direction: Literal["up", "down", "left", "right"] = Field(..., description="Scroll direction.")
    amount: int = Field(800, ge=1, description="Distance to scroll in pixels.")


class DragAndDropArgs(_CoordinateArgs):
    dest_x: int = Field(..., ge=0, le=999, description="Drop position x on a 0-999 grid.")
    dest_y: int = Field(..., ge=0, le=999, description="Drop position y on a 0-999 grid.")


class KeyCombinationArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keys: str = Field(..., min_length=1, description="Keys joined by '+', e.g. 'Control+A'.")


class NoArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")
