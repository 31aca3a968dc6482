from .executor import ApprovalExecutor

__all__ = ["ApprovalExecutor"]
