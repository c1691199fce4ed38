"""localnet CLI Module"""
from .commands import cli, main
from .network import network
from .node import node

__all__ = ['cli', 'main', 'network', 'node']
