#!/usr/bin/env python3
"""
Logic Games Bot - Main Entry Point

This script runs the Discord logic games bot. Configure your bot token in
config.json or set the DISCORD_BOT_TOKEN environment variable.

Usage:
    python main.py

Configuration:
    1. Copy config.example.json to config.json and set your Discord bot token
    2. Or set DISCORD_BOT_TOKEN environment variable
    3. Customize game settings in config.json as needed

Environment Variables:
    DISCORD_BOT_TOKEN: Your Discord bot token (overrides config.json)
"""

import asyncio
import sys
import os
import json
from pathlib import Path

from logic_games.bot import run_bot, setup_logging


def load_config(config_path: Path = Path("config.json")):
    """Load configuration from config.json file."""
    if not config_path.exists():
        print(f"❌ Error: {config_path} not found!")
        print("Please copy config.example.json to config.json and configure your Discord bot token.")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in {config_path}: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error loading {config_path}: {e}")
        sys.exit(1)


def get_bot_token(config):
    """Get bot token from environment variable or config file."""
    # Environment variable takes precedence
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == "YOUR_DISCORD_BOT_TOKEN_HERE":
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        sys.exit(1)

    return token


async def run_bot_with_config():
    """Run the bot with configuration."""
    config = load_config()
    setup_logging(config)
    token = get_bot_token(config)
    await run_bot(token, config)


if __name__ == "__main__":
    try:
        print("🧩 Starting Logic Games Bot...")
        asyncio.run(run_bot_with_config())
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")
