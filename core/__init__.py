"""
Core module for the FrameLink node.

Contains the agents, the shared acquisition retry, the event bus,
typed messages and protocol definitions (interfaces) for all components.
"""
