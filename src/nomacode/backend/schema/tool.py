"""Tool catalog schemas"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..enum import ToolAvailability


class ToolOut(BaseModel):
    """Response schema for one catalog tool"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Tool id")
    name: str = Field(..., description="Display name")
    description: str = Field(..., description="Short description")
    install_cmd: Optional[str] = Field(None, alias="installCmd", description="Suggested install command")
    requires_proot: bool = Field(False, alias="requiresProot", description="Runs inside proot-distro on Termux")
    available: bool = Field(..., description="Whether the tool can be launched")
    availability: ToolAvailability = Field(..., description="available, not_installed or incompatible")


class ToolsOut(BaseModel):
    """Response schema for the tool listing"""

    model_config = ConfigDict(populate_by_name=True)

    available: List[ToolOut] = Field(default_factory=list)
    unavailable: List[ToolOut] = Field(default_factory=list)
    default_tool: str = Field(..., alias="defaultTool", description="Preferred tool for new sessions")
