from onboard.models.workspace import Workspace

__all__ = ["Workspace"]
