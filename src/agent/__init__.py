"""Reco agent: orchestration, model gateway, LLM routing, and tools."""

from src.agent.brain import AgentBrain
from src.agent.gateway import ModelGateway
from src.agent.llm_router import LLMRouter
from src.agent.persona import Persona

__all__ = ["AgentBrain", "LLMRouter", "ModelGateway", "Persona"]
