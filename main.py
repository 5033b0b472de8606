#!/usr/bin/env python3
"""
Sheet Quiz Bot - Main Entry Point

Starts the Discord bot that runs quizzes from a published question sheet.

Usage:
    python main.py [path/to/config.json]

The bot token comes from DISCORD_BOT_TOKEN or the "bot.token" field of the
config file. The question sheet comes from QUIZ_SOURCE_URL or "quiz.source_url".
"""

import asyncio
import sys
import os
import json
import logging
from pathlib import Path

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def load_config(path=DEFAULT_CONFIG_PATH):
    """Read the JSON config file and apply environment overrides."""
    config_path = Path(path)
    if not config_path.is_file():
        print(f"❌ Error: {config_path} not found!")
        print("Create it from the config.json shipped with the bot.")
        sys.exit(1)

    try:
        config = json.loads(config_path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        print(f"❌ Error: {config_path} is not valid JSON: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error: Could not read {config_path}: {e}")
        sys.exit(1)

    source_url = os.getenv('QUIZ_SOURCE_URL')
    if source_url:
        config.setdefault('quiz', {})['source_url'] = source_url

    return config


def get_bot_token(config):
    """Token from the environment first, then the config file."""
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if token and token != TOKEN_PLACEHOLDER:
        return token

    print("❌ Error: No Discord bot token configured!")
    print("Set DISCORD_BOT_TOKEN or fill in 'bot.token' in the config file.")
    sys.exit(1)


def setup_logging_from_config(config):
    """Console plus bot.log, with errors also copied to errors.log."""
    log_config = config.get('logging', {})
    level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_dir = Path(log_config.get('log_directory', './logs/'))
    log_dir.mkdir(parents=True, exist_ok=True)

    error_handler = logging.FileHandler(log_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "bot.log", encoding='utf-8'),
            error_handler,
        ]
    )

    # Library chatter stays at WARNING
    for name in ('discord', 'discord.http', 'urllib3'):
        logging.getLogger(name).setLevel(logging.WARNING)


async def main(config_path=DEFAULT_CONFIG_PATH):
    config = load_config(config_path)
    setup_logging_from_config(config)
    token = get_bot_token(config)

    from sheetquiz.bot import run_bot
    await run_bot(token, config)


if __name__ == "__main__":
    try:
        print("🤖 Starting Sheet Quiz Bot...")
        asyncio.run(main(*sys.argv[1:2]))
    except KeyboardInterrupt:
        print("\n👋 Sheet Quiz Bot stopped")
    except Exception as e:
        print(f"❌ Sheet Quiz Bot crashed: {e}")
        sys.exit(1)
