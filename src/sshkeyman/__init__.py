"""
Inventories the SSH keys in a key directory, pairs private and public halves,
reconciles them with the running ssh-agent, and creates, deletes, loads,
unloads or copies keys while logging every command it runs.
"""
from .keystore import KeyStore
from .agent import KeyAgentClient
from .keygen import KeyGenerationClient
from .status import AgentStatusResolver
from .controller import InventoryController

__all__ = ["KeyStore", "KeyAgentClient", "KeyGenerationClient", "AgentStatusResolver", "InventoryController"]
