"""The voice agent: session state, command interpretation and the controller."""

from hark.agent.controller import LISTENING_PROMPT, AgentController
from hark.agent.interpreter import CommandInterpreter
from hark.agent.session import AgentSnapshot, AgentState, Session

__all__ = [
    "AgentController",
    "AgentSnapshot",
    "AgentState",
    "CommandInterpreter",
    "LISTENING_PROMPT",
    "Session",
]
