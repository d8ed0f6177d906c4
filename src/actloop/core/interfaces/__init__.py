"""
Core Protocol Interfaces

Contracts for the engine's external collaborators:
    - DecisionPolicyProtocol: chooses the next action
    - ToolProtocol: a named, schema-described capability
    - StateManagerProtocol: session persistence
    - LoggerProtocol: structured logging
"""

from actloop.core.interfaces.logging import LoggerProtocol
from actloop.core.interfaces.policy import DecisionPolicyProtocol
from actloop.core.interfaces.state import StateManagerProtocol
from actloop.core.interfaces.tools import ToolProtocol

__all__ = [
    "DecisionPolicyProtocol",
    "LoggerProtocol",
    "StateManagerProtocol",
    "ToolProtocol",
]
