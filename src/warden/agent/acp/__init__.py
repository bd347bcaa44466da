"""ACP client integration."""

from warden.agent.acp.permissions import AcpPermissionResolver

__all__ = ["AcpPermissionResolver"]
