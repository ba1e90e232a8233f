import logging
import os


class Settings:
    # Game
    BOARD_SIZE = int(os.environ.get('BOARD_SIZE', '4'))
    WIN_TILE = int(os.environ.get('WIN_TILE', '2048'))
    # Countdown started on the first move (seconds)
    TIME_LIMIT_SEC = int(os.environ.get('TIME_LIMIT_SEC', '45'))
    # Leaderboard storage: 'file' or 'database'
    LEADERBOARD_BACKEND = os.environ.get('LEADERBOARD_BACKEND', 'file')
    LEADERBOARD_FILE = os.environ.get('LEADERBOARD_FILE', 'leaderboard.json')
    DATABASE_URL = os.environ.get('DATABASE_URL') or 'sqlite:///leaderboard.db'
    # Entries shown by the CLI and returned by default from the API. 0 means all.
    LEADERBOARD_LIMIT = int(os.environ.get('LEADERBOARD_LIMIT', '10'))
    RATE_LIMIT = os.environ.get('RATE_LIMIT', '100/minute')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or Settings.LOG_LEVEL).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
