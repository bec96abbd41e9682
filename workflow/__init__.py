"""Workflow node classes for the browser action gateway."""

from .audit_node import RejectionAuditNode
from .execution_node import ExecutionNode
from .guard_nodes import QuotaNode, ValidationNode

__all__ = [
    "ExecutionNode",
    "QuotaNode",
    "RejectionAuditNode",
    "ValidationNode",
]
