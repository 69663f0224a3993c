"""Development workspace provisioning."""

from .provisioner import Workspace, enter_workspace, provision_workspace

__all__ = ["Workspace", "provision_workspace", "enter_workspace"]
