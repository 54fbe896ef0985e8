#!/usr/bin/env python
"""
Run script for the Solana Volume Telegram Bot.

This script sets up logging directories and runs the bot.
"""

from pathlib import Path

# Create logs directory if it doesn't exist
Path("logs").mkdir(exist_ok=True)

from volumebot.main import main

if __name__ == "__main__":
    main()
