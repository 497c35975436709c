import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///voteroom.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Session store backend: sql, redis or memory
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'sql')
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    # Sessions expire this long after their last write (seconds)
    SESSION_TTL_SEC = int(os.environ.get('SESSION_TTL_SEC', '7200'))
    MAX_PARTICIPANTS = int(os.environ.get('MAX_PARTICIPANTS', '25'))
    DISPLAY_NAME_MAX_LEN = int(os.environ.get('DISPLAY_NAME_MAX_LEN', '20'))
    DEFAULT_DISPLAY_NAME = os.environ.get('DEFAULT_DISPLAY_NAME', 'Anonymous')
    VOTE_MIN = int(os.environ.get('VOTE_MIN', '0'))
    VOTE_MAX = int(os.environ.get('VOTE_MAX', '6'))
    # Upper bound accepted for open_vote timers (seconds)
    MAX_ROUND_TIMER_SEC = int(os.environ.get('MAX_ROUND_TIMER_SEC', '3600'))
    # Round timer check interval (seconds)
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1.0'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
    # Rejection-sampling budget when allocating a join code
    CODE_ALLOCATION_ATTEMPTS = int(os.environ.get('CODE_ALLOCATION_ATTEMPTS', '200'))
