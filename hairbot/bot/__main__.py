"""Entry point for running bot as module."""

from hairbot.bot.main import run

if __name__ == "__main__":
    run()
