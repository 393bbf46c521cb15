# path: src/runtime/__init__.py

"""
Runtime wiring package for the dragon bot.

Holds the BotContext, collaborator contracts, the EventRouter, the DragonBot
assembly and the command-line entrypoint.

Usage:
    python -m runtime.agent_runtime_main
"""
